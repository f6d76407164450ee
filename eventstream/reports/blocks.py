from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Union

@dataclass(frozen=True)
class Heading:
    text: str
    level: int = 2

@dataclass(frozen=True)
class Text:
    text: str

@dataclass(frozen=True)
class Image:
    image: Any
    width: float
    height: float

@dataclass(frozen=True)
class PageBreak:
    pass

Block = Union[Heading, Text, Image, PageBreak]
