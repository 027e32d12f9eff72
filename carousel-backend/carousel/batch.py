"""Fan a carousel request out into per-slide work and gather the results."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx

from .errors import BatchValidationError, CarouselError
from .image_ops import from_data_uri
from .models import BatchStats, Dimensions, SlideResult, SlideSpec, UploadResult
from .slides import generate_slide
from .storage import Uploader

logger = logging.getLogger(__name__)

MIN_DIMENSION = 200
MAX_DIMENSION = 4000


@dataclass
class BatchResult:
    successful: List[SlideResult]
    failed: List[SlideResult]
    stats: BatchStats


def validate_batch(
    backgrounds: Sequence[str],
    slides: Sequence[SlideSpec],
    width: int,
    height: int,
) -> None:
    """Reject malformed batches before any download starts.

    Raises:
        BatchValidationError: With a message suitable for the client.
    """
    if not isinstance(backgrounds, (list, tuple)) or len(backgrounds) == 0:
        raise BatchValidationError("backgrounds array is required and must not be empty")
    if not isinstance(slides, (list, tuple)) or len(slides) == 0:
        raise BatchValidationError("slides array is required and must not be empty")
    if len(backgrounds) != len(slides):
        raise BatchValidationError("backgrounds and slides arrays must have the same length")
    if not (MIN_DIMENSION <= width <= MAX_DIMENSION and MIN_DIMENSION <= height <= MAX_DIMENSION):
        raise BatchValidationError(
            f"Width and height must be between {MIN_DIMENSION} and {MAX_DIMENSION} pixels"
        )


async def run_batch(
    backgrounds: Sequence[str],
    slides: Sequence[SlideSpec],
    width: int,
    height: int,
    client: Optional[httpx.AsyncClient] = None,
) -> BatchResult:
    """Generate every slide concurrently.

    Each slide writes its result into its own slot, so the output order
    follows the input order whatever order the downloads finish in.
    """
    validate_batch(backgrounds, slides, width, height)

    results: List[Optional[SlideResult]] = [None] * len(backgrounds)

    async def _run(index: int) -> None:
        results[index] = await generate_slide(
            backgrounds[index], slides[index], width, height, index, client=client
        )

    started = time.perf_counter()
    await asyncio.gather(*(_run(i) for i in range(len(backgrounds))))
    elapsed_ms = int((time.perf_counter() - started) * 1000)

    successful = [r for r in results if r is not None and r.success]
    failed = [r for r in results if r is not None and not r.success]
    stats = BatchStats(
        total_slides=len(backgrounds),
        successful=len(successful),
        failed=len(failed),
        generation_time_ms=elapsed_ms,
        dimensions=Dimensions(width=width, height=height),
    )
    logger.info(
        "Generated %d/%d slides (%d failed) at %dx%d in %d ms",
        stats.successful,
        stats.total_slides,
        stats.failed,
        width,
        height,
        elapsed_ms,
    )
    return BatchResult(successful=successful, failed=failed, stats=stats)


async def upload_slides(
    slides: Sequence[SlideResult],
    uploader: Uploader,
    credential: Optional[str] = None,
    folder_id: Optional[str] = None,
) -> List[UploadResult]:
    """Send successful slides to ``uploader``; failures are reported per slide."""

    async def _upload(slide: SlideResult) -> UploadResult:
        try:
            if not slide.base64:
                raise CarouselError("slide has no image data")
            image = from_data_uri(slide.base64)
            return await uploader.upload(image, slide.filename, credential, folder_id)
        except (CarouselError, ValueError) as exc:
            logger.warning("Error uploading %s: %s", slide.filename, exc)
            return UploadResult(success=False, filename=slide.filename, error=str(exc))
        except Exception as exc:
            logger.exception("Unexpected error uploading %s", slide.filename)
            return UploadResult(
                success=False, filename=slide.filename, error=str(exc) or exc.__class__.__name__
            )

    return list(await asyncio.gather(*(_upload(s) for s in slides)))
