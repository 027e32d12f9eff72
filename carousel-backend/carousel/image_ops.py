"""Image manipulation utilities.

This module wraps the raster operations behind slide rendering using
Pillow: cover-fit cropping of the downloaded background, rasterizing the
SVG text overlay and compositing it, and PNG/data URI encoding. Every
failure is reported as ``RenderError`` so that the caller can mark the
slide as failed without inspecting Pillow or CairoSVG exceptions.
"""

from __future__ import annotations

import base64
from io import BytesIO
from typing import Tuple

from PIL import Image, ImageOps, UnidentifiedImageError  # type: ignore[import]

from .errors import RenderError
from .overlay import OverlayLayer

PNG_MIME = "image/png"


def _open_image(data: bytes) -> Image.Image:
    """Open raw image bytes with Pillow and convert to RGBA."""
    try:
        img = Image.open(BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise RenderError(f"Could not decode background image: {exc}") from exc
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return img


def cover_fit(img: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Scale ``img`` to fill ``size`` and crop the overflow around the centre.

    The aspect ratio is never distorted; whichever axis overflows the target
    box is trimmed equally on both sides.
    """
    return ImageOps.fit(img, size, method=Image.LANCZOS, centering=(0.5, 0.5))


def rasterize_overlay(overlay: OverlayLayer) -> Image.Image:
    """Render the overlay SVG to an RGBA image of the overlay's size.

    CairoSVG is imported here rather than at module level because it loads
    the native cairo library on import.
    """
    try:
        import cairosvg  # type: ignore[import]

        png_bytes = cairosvg.svg2png(
            bytestring=overlay.to_svg().encode("utf-8"),
            output_width=overlay.width,
            output_height=overlay.height,
        )
        layer = Image.open(BytesIO(png_bytes))
        layer.load()
    except (ImportError, OSError, ValueError, SyntaxError) as exc:
        raise RenderError(f"Could not rasterize text overlay: {exc}") from exc
    if layer.mode != "RGBA":
        layer = layer.convert("RGBA")
    if layer.size != (overlay.width, overlay.height):
        layer = layer.resize((overlay.width, overlay.height), Image.LANCZOS)
    return layer


def encode_png(img: Image.Image) -> bytes:
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def render_slide(background: bytes, overlay: OverlayLayer, width: int, height: int) -> bytes:
    """Produce the final slide as PNG bytes.

    Args:
        background: Raw bytes of the downloaded background image.
        overlay: Text layer from ``compose_overlay``.
        width: Output width in pixels.
        height: Output height in pixels.

    Returns:
        The composited slide encoded as PNG.

    Raises:
        RenderError: The background could not be decoded or the overlay
            could not be rasterized.
    """
    img = cover_fit(_open_image(background), (width, height))
    if not overlay.is_empty:
        img = Image.alpha_composite(img, rasterize_overlay(overlay))
    try:
        return encode_png(img)
    except (OSError, ValueError) as exc:
        raise RenderError(f"Could not encode slide: {exc}") from exc


def to_data_uri(data: bytes, mime: str = PNG_MIME) -> str:
    """Wrap image bytes in a ``data:`` URI."""
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_uri(data_uri: str) -> bytes:
    """Inverse of ``to_data_uri``; plain base64 without a prefix is accepted."""
    payload = data_uri.split(",", 1)[1] if data_uri.startswith("data:") else data_uri
    return base64.b64decode(payload)
