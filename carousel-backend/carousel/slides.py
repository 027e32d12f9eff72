"""Single-slide pipeline: download the background, draw the text, encode."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from .errors import CarouselError
from .fetcher import fetch_image
from .image_ops import render_slide, to_data_uri
from .models import SlideResult, SlideSpec
from .overlay import compose_overlay

logger = logging.getLogger(__name__)


def slide_filename(index: int) -> str:
    return f"slide-{index + 1}"


async def generate_slide(
    background: str,
    slide: SlideSpec,
    width: int,
    height: int,
    index: int,
    client: Optional[httpx.AsyncClient] = None,
) -> SlideResult:
    """Render slide ``index`` and report the outcome.

    Never raises: download and render failures come back as a
    ``SlideResult`` with ``success=False`` so one bad background cannot
    sink the rest of the batch.
    """
    filename = slide_filename(index)
    try:
        fetched = await fetch_image(background, client=client)
        overlay = compose_overlay(
            slide.title,
            slide.subtitle,
            slide.text_color,
            width,
            height,
            slide.font_family,
        )
        png = await asyncio.to_thread(render_slide, fetched.content, overlay, width, height)
    except CarouselError as exc:
        logger.error("Error generating slide %d: %s", index + 1, exc)
        return SlideResult(success=False, filename=filename, error=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error generating slide %d", index + 1)
        return SlideResult(success=False, filename=filename, error=str(exc) or exc.__class__.__name__)
    return SlideResult(success=True, filename=filename, base64=to_data_uri(png))
