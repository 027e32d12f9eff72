"""Build the SVG text layer drawn over each slide.

The overlay is a plain SVG document so that glyph rendering is left to the
rasterizer (CairoSVG). Only fonts installed on the host render as named;
anything else falls back through the CSS font-family chain.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from xml.sax.saxutils import escape

from .models import DEFAULT_TEXT_COLOR

TITLE_SCALE = 0.055
SUBTITLE_SCALE = 0.033
PADDING_SCALE = 0.05

DEFAULT_FONT = "Arial"

FONT_STACKS = {
    "arial": "Arial, Helvetica, sans-serif",
    "helvetica": "Helvetica, Arial, sans-serif",
    "roboto": "Roboto, Arial, sans-serif",
    "open sans": "'Open Sans', Arial, sans-serif",
    "montserrat": "Montserrat, Arial, sans-serif",
    "bebas neue": "'Bebas Neue', Impact, sans-serif",
    "impact": "Impact, 'Arial Black', sans-serif",
    "futura": "Futura, 'Century Gothic', sans-serif",
    "georgia": "Georgia, 'Times New Roman', serif",
    "times": "'Times New Roman', Times, serif",
}

_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}
# Characters XML 1.0 does not allow anywhere in a document.
_XML_INVALID = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")

SHADOW_FILTER = (
    '<filter id="shadow">'
    '<feDropShadow dx="2" dy="2" stdDeviation="4" flood-opacity="0.5"/>'
    "</filter>"
)


def escape_xml(text: str) -> str:
    """Escape ``< > & ' "`` and drop control characters XML cannot carry."""
    return escape(_XML_INVALID.sub("", text), _XML_ENTITIES)


def resolve_font_stack(font_family: Optional[str]) -> str:
    """Map a font name to its CSS fallback chain; unknown names get Arial's."""
    if font_family:
        stack = FONT_STACKS.get(font_family.strip().lower())
        if stack is not None:
            return stack
    return FONT_STACKS[DEFAULT_FONT.lower()]


def _num(value: float) -> str:
    return f"{value:g}"


@dataclass(frozen=True)
class TextBlock:
    role: str
    text: str
    x: float
    y: float
    font_size: int
    font_weight: str
    font_family: str
    fill: str
    stroke: str
    stroke_width: int

    def to_svg(self) -> str:
        return (
            f'<text class="{self.role}" x="{_num(self.x)}" y="{_num(self.y)}" '
            f'text-anchor="middle" '
            f'font-family="{escape_xml(self.font_family)}" '
            f'font-size="{self.font_size}px" font-weight="{self.font_weight}" '
            f'fill="{escape_xml(self.fill)}" stroke="{self.stroke}" '
            f'stroke-width="{self.stroke_width}" paint-order="stroke fill" '
            f'filter="url(#shadow)">{escape_xml(self.text)}</text>'
        )


@dataclass(frozen=True)
class OverlayLayer:
    """Text blocks positioned on a ``width`` x ``height`` canvas.

    ``padding`` and ``max_text_width`` describe the safe text area. They are
    carried for callers that wrap text; lines are not wrapped here.
    """

    width: int
    height: int
    padding: int
    max_text_width: int
    blocks: Tuple[TextBlock, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.blocks

    def block(self, role: str) -> Optional[TextBlock]:
        for block in self.blocks:
            if block.role == role:
                return block
        return None

    def to_svg(self) -> str:
        header = (
            f'<svg xmlns="http://www.w3.org/2000/svg" '
            f'width="{self.width}" height="{self.height}" '
            f'viewBox="0 0 {self.width} {self.height}">'
        )
        if self.is_empty:
            return header + "</svg>"
        body = "".join(block.to_svg() for block in self.blocks)
        return f"{header}<defs>{SHADOW_FILTER}</defs>{body}</svg>"


def compose_overlay(
    title: Optional[str],
    subtitle: Optional[str],
    text_color: Optional[str],
    width: int,
    height: int,
    font_family: Optional[str] = None,
) -> OverlayLayer:
    """Lay out the title and subtitle for one slide.

    Sizes scale with the canvas width. With both lines present the title sits
    above the vertical midpoint by the subtitle size and the subtitle below it
    by the title size; a single line sits on the midpoint. Both are centred
    horizontally.

    Args:
        title: Title text, blank or ``None`` for none.
        subtitle: Subtitle text, blank or ``None`` for none.
        text_color: Fill colour, defaults to white.
        width: Canvas width in pixels.
        height: Canvas height in pixels.
        font_family: Font name from ``FONT_STACKS``.

    Returns:
        An ``OverlayLayer`` with zero, one or two text blocks.
    """
    padding = math.floor(width * PADDING_SCALE)
    max_text_width = width - padding * 2

    title = (title or "").strip()
    subtitle = (subtitle or "").strip()
    if not title and not subtitle:
        return OverlayLayer(width, height, padding, max_text_width)

    title_size = math.floor(width * TITLE_SCALE)
    subtitle_size = math.floor(width * SUBTITLE_SCALE)
    fill = text_color or DEFAULT_TEXT_COLOR
    stack = resolve_font_stack(font_family)
    center_x = width / 2
    center_y = height / 2

    blocks = []
    if title:
        blocks.append(
            TextBlock(
                role="title",
                text=title,
                x=center_x,
                y=center_y - subtitle_size if subtitle else center_y,
                font_size=title_size,
                font_weight="bold",
                font_family=stack,
                fill=fill,
                stroke="rgba(0,0,0,0.3)",
                stroke_width=2,
            )
        )
    if subtitle:
        blocks.append(
            TextBlock(
                role="subtitle",
                text=subtitle,
                x=center_x,
                y=center_y + title_size if title else center_y,
                font_size=subtitle_size,
                font_weight="normal",
                font_family=stack,
                fill=fill,
                stroke="rgba(0,0,0,0.2)",
                stroke_width=1,
            )
        )
    return OverlayLayer(width, height, padding, max_text_width, tuple(blocks))
