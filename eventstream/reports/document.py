from __future__ import annotations
import io
from typing import Sequence
from xml.sax.saxutils import escape
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import PageBreak as RLPageBreak, Paragraph, SimpleDocTemplate, Spacer

from eventstream.errors import RenderError
from eventstream.reports.blocks import Block, Heading, Image, PageBreak, Text

class PdfDocumentWriter:
    """Lays out report blocks on A4 pages and returns the PDF bytes."""

    def __init__(self, margin: float = 50):
        self.margin = margin
        self.styles = getSampleStyleSheet()

    def _heading_style(self, level: int):
        return self.styles["Title"] if level <= 1 else self.styles[f"Heading{min(level, 4)}"]

    def write(self, blocks: Sequence[Block]) -> bytes:
        story = []
        for block in blocks:
            if isinstance(block, Heading):
                story.append(Paragraph(escape(block.text), self._heading_style(block.level)))
            elif isinstance(block, Text):
                story.append(Paragraph(escape(block.text), self.styles["Normal"]))
            elif isinstance(block, Image):
                flowable = block.image
                flowable.hAlign = "CENTER"
                story.append(flowable)
                story.append(Spacer(1, 12))
            elif isinstance(block, PageBreak):
                story.append(RLPageBreak())
            else:
                raise RenderError(f"unsupported block {type(block).__name__}")

        buf = io.BytesIO()
        doc = SimpleDocTemplate(buf, pagesize=A4, leftMargin=self.margin, rightMargin=self.margin,
                                topMargin=self.margin, bottomMargin=self.margin,
                                title="Event Analytics Report")
        try:
            doc.build(story)
        except Exception as exc:
            raise RenderError(f"PDF layout failed: {exc}") from exc
        return buf.getvalue()
