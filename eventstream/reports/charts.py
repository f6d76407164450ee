from __future__ import annotations
from typing import List, Sequence, Tuple
from reportlab.graphics.charts.linecharts import HorizontalLineChart
from reportlab.graphics.shapes import Drawing, String
from reportlab.lib import colors

from eventstream.errors import RenderError

PALETTE = [
    colors.Color(54 / 255, 162 / 255, 235 / 255),   # blue
    colors.Color(255 / 255, 99 / 255, 132 / 255),   # red
    colors.Color(75 / 255, 192 / 255, 192 / 255),   # green
    colors.Color(255 / 255, 206 / 255, 86 / 255),   # yellow
    colors.Color(153 / 255, 102 / 255, 255 / 255),  # purple
    colors.Color(255 / 255, 159 / 255, 64 / 255),   # orange
]

class LineChartRenderer:
    """Renders bucketed series as a reportlab ``Drawing`` the PDF writer can embed."""

    def __init__(self, width: float = 480, height: float = 250):
        self.width = width
        self.height = height

    def line_chart(self, labels: Sequence[str], series: List[Tuple[str, Sequence[float]]], title: str) -> Drawing:
        if not labels or not series:
            raise RenderError(f"nothing to chart for {title!r}")
        for name, values in series:
            if len(values) != len(labels):
                raise RenderError(f"series {name!r} has {len(values)} values for {len(labels)} labels")

        d = Drawing(self.width, self.height)
        lc = HorizontalLineChart()
        lc.x = 45
        lc.y = 50
        lc.width = self.width - 65
        lc.height = self.height - 85
        lc.data = [tuple(float(v) for v in values) for _, values in series]

        lc.categoryAxis.categoryNames = list(labels)
        lc.categoryAxis.labels.boxAnchor = "ne"
        lc.categoryAxis.labels.angle = 30
        lc.categoryAxis.labels.fontSize = 6

        lowest = min(min(row) for row in lc.data)
        peak = max(max(row) for row in lc.data)
        lc.valueAxis.valueMin = min(0.0, lowest)
        if peak <= lc.valueAxis.valueMin:
            lc.valueAxis.valueMax = lc.valueAxis.valueMin + 1
        lc.valueAxis.labels.fontSize = 7

        for i in range(len(lc.data)):
            lc.lines[i].strokeColor = PALETTE[i % len(PALETTE)]
            lc.lines[i].strokeWidth = 2

        d.add(lc)
        d.add(String(self.width / 2, self.height - 18, title, textAnchor="middle", fontSize=12))
        return d
