from datetime import datetime, timezone, timedelta
import pytest

from eventstream.windowing import (
    DAY_MS, HOUR, MINUTE, bucket_granularity, bucket_series, format_title, resolve_window, summarize, to_ms,
)

T0 = to_ms(datetime(2026, 2, 7, 12, 0, 0, tzinfo=timezone.utc))

def test_granularity_switches_after_one_day():
    assert bucket_granularity(T0, T0 + 2 * 3_600_000) == MINUTE
    assert bucket_granularity(T0, T0 + DAY_MS) == MINUTE
    assert bucket_granularity(T0, T0 + DAY_MS + 1) == HOUR
    assert bucket_granularity(T0, T0 + 2 * DAY_MS) == HOUR

def test_minute_buckets_sum_values():
    samples = [(T0, 1.0), (T0 + 10_000, 2.0), (T0 + 61_000, 5.0)]
    labels, values = bucket_series(samples, MINUTE)
    assert labels == ["12:00", "12:01"]
    assert values == [3.0, 5.0]

def test_hour_buckets_carry_the_day():
    samples = [(T0, 1.0), (T0 + 3_600_000, 1.0), (T0 + 3_600_000 + 5, 1.0)]
    labels, values = bucket_series(samples, HOUR)
    assert labels == ["Feb 07 12:00", "Feb 07 13:00"]
    assert values == [1.0, 2.0]

def test_full_day_window_keeps_both_ends_apart():
    samples = [(T0, 1.0), (T0 + DAY_MS, 1.0)]
    labels, values = bucket_series(samples, bucket_granularity(T0, T0 + DAY_MS))
    assert labels == ["Feb 07 12:00", "Feb 08 12:00"]
    assert values == [1.0, 1.0]

def test_hour_buckets_in_different_years_stay_apart():
    year_before = to_ms(datetime(2025, 2, 7, 12, 30, tzinfo=timezone.utc))
    labels, values = bucket_series([(year_before, 1.0), (T0, 2.0)], HOUR)
    assert labels == ["2025-02-07 12:00", "2026-02-07 12:00"]
    assert values == [1.0, 2.0]

def test_labels_are_capped_in_first_seen_order():
    samples = [(T0 + i * 60_000, float(i)) for i in range(30)]
    labels, values = bucket_series(samples, MINUTE, max_labels=20)
    assert len(labels) == 20
    assert labels[0] == "12:00" and labels[-1] == "12:19"
    assert values[-1] == 19.0

def test_resolve_window_defaults_to_last_seven_days():
    now = T0
    assert resolve_window(None, None, now=now) == (now - 7 * DAY_MS, now)
    assert resolve_window(None, now, default_days=1) == (now - DAY_MS, now)
    with pytest.raises(ValueError):
        resolve_window(now + 1, now)

def test_summarize():
    st = summarize([120.0, 80.0, 100.0])
    assert st.count == 3
    assert st.sum == 300.0
    assert st.average == 100.0
    assert (st.min, st.max) == (80.0, 120.0)
    with pytest.raises(ValueError):
        summarize([])

def test_format_title():
    assert format_title("ts:events:DATA_FETCHED:count") == "Data Fetched - Count"
    assert format_title("ts:events:FILE_UPLOADED:filesize") == "File Uploaded - Filesize"
    assert format_title("custom:key", prefix="ts:events:") == "Custom - Key"

def test_to_ms_treats_naive_datetimes_as_utc():
    naive = datetime(2026, 2, 7, 12, 0, 0)
    assert to_ms(naive) == T0
    assert to_ms(naive.replace(tzinfo=timezone(timedelta(hours=1)))) == T0 - 3_600_000
