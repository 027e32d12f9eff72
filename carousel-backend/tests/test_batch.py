import asyncio
import io

import httpx
import pytest
from PIL import Image

from carousel import slides
from carousel.batch import run_batch, upload_slides, validate_batch
from carousel.errors import BatchValidationError, UploadError
from carousel.image_ops import from_data_uri
from carousel.models import SlideResult, SlideSpec, UploadResult


def _run(handler, backgrounds, slide_specs, width=200, height=200):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await run_batch(backgrounds, slide_specs, width, height, client=client)

    return asyncio.run(go())


def _blank(n):
    return [SlideSpec() for _ in range(n)]


@pytest.mark.parametrize(
    "backgrounds, slide_count, message",
    [
        ([], 0, "backgrounds array is required"),
        (["https://x/a.jpg"], 0, "slides array is required"),
        (["https://x/a.jpg", "https://x/b.jpg"], 1, "same length"),
    ],
)
def test_validation_rejects_before_any_download(routes_handler, backgrounds, slide_count, message):
    handler = routes_handler({})
    with pytest.raises(BatchValidationError, match=message):
        _run(handler, backgrounds, _blank(slide_count))
    assert handler.calls == []


@pytest.mark.parametrize("width, height", [(200, 200), (4000, 4000), (200, 4000), (4000, 200)])
def test_dimension_bounds_are_inclusive(width, height):
    validate_batch(["u"], _blank(1), width, height)


@pytest.mark.parametrize("width, height", [(199, 1080), (1080, 199), (4001, 1080), (1080, 4001)])
def test_dimensions_outside_bounds_rejected(width, height):
    with pytest.raises(BatchValidationError, match="between 200 and 4000"):
        validate_batch(["u"], _blank(1), width, height)


def test_one_missing_background_fails_only_its_slide(routes_handler, image_response):
    handler = routes_handler({"https://x/a.jpg": image_response()})
    result = _run(handler, ["https://x/a.jpg", "https://x/gone.jpg"], _blank(2))

    assert [r.filename for r in result.successful] == ["slide-1"]
    assert [r.filename for r in result.failed] == ["slide-2"]
    assert "HTTP 404" in result.failed[0].error
    assert result.failed[0].base64 is None
    assert result.stats.total_slides == 2
    assert result.stats.successful == 1
    assert result.stats.failed == 1
    assert result.stats.dimensions.width == 200
    assert result.stats.generation_time_ms >= 0


def test_results_keep_input_order_despite_completion_order(png_bytes):
    delays = {"/0": 0.06, "/1": 0.0, "/2": 0.03, "/3": 0.0, "/4": 0.01}

    async def handler(request):
        path = request.url.path
        await asyncio.sleep(delays[path])
        if path == "/3":
            return httpx.Response(500)
        return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

    urls = [f"https://x/{i}" for i in range(5)]
    result = _run(handler, urls, _blank(5))
    assert [r.filename for r in result.successful] == ["slide-1", "slide-2", "slide-3", "slide-5"]
    assert [r.filename for r in result.failed] == ["slide-4"]
    assert len(result.successful) + len(result.failed) == len(urls)


def test_successful_slide_is_png_data_uri_of_requested_size(routes_handler, image_response):
    handler = routes_handler({"https://x/a.jpg": image_response()})
    result = _run(handler, ["https://x/a.jpg"], _blank(1), width=320, height=240)
    slide = result.successful[0]
    assert slide.success
    assert slide.base64.startswith("data:image/png;base64,")
    img = Image.open(io.BytesIO(from_data_uri(slide.base64)))
    assert img.size == (320, 240)


def test_title_only_slide_uses_centered_title_overlay(monkeypatch, routes_handler, image_response):
    captured = []

    def fake_render(background, overlay, width, height):
        captured.append(overlay)
        return b"png"

    monkeypatch.setattr(slides, "render_slide", fake_render)
    handler = routes_handler({"https://x/a.jpg": image_response()})
    result = _run(handler, ["https://x/a.jpg"], [SlideSpec(title="Hello")], width=1080, height=1080)

    assert result.stats.successful == 1
    (overlay,) = captured
    assert [b.role for b in overlay.blocks] == ["title"]
    assert overlay.block("title").y == 540


def test_redirected_background_renders(routes_handler, image_response):
    handler = routes_handler(
        {
            "https://x/a.jpg": httpx.Response(301, headers={"location": "https://x/real.jpg"}),
            "https://x/real.jpg": image_response(),
        }
    )
    result = _run(handler, ["https://x/a.jpg"], _blank(1))
    assert result.stats.successful == 1


def test_non_image_background_fails_slide(routes_handler, image_response):
    handler = routes_handler({"https://x/a": image_response(b"<html/>", "text/html")})
    result = _run(handler, ["https://x/a"], _blank(1))
    assert result.failed[0].filename == "slide-1"
    assert "Invalid content type" in result.failed[0].error


def test_corrupt_image_fails_slide(routes_handler, image_response):
    handler = routes_handler({"https://x/a.png": image_response(b"garbage")})
    result = _run(handler, ["https://x/a.png"], _blank(1))
    assert result.stats.failed == 1
    assert "decode" in result.failed[0].error


def test_unexpected_render_error_stays_inside_slide(monkeypatch, routes_handler, image_response):
    def explode(*args):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(slides, "render_slide", explode)
    handler = routes_handler({"https://x/a.png": image_response()})
    result = _run(handler, ["https://x/a.png"], _blank(1))
    assert result.failed == [SlideResult(success=False, filename="slide-1", error="kaboom")]


class _FlakyUploader:
    def __init__(self):
        self.seen = []

    async def upload(self, image, filename, credential, folder_id):
        self.seen.append((image, filename, credential, folder_id))
        if filename == "slide-2":
            raise UploadError("quota exceeded")
        return UploadResult(success=True, filename=filename, remote_id=f"id-{filename}")


def test_upload_failures_are_reported_per_slide(png_bytes):
    from carousel.image_ops import to_data_uri

    done = [
        SlideResult(success=True, filename="slide-1", base64=to_data_uri(png_bytes)),
        SlideResult(success=True, filename="slide-2", base64=to_data_uri(png_bytes)),
    ]
    uploader = _FlakyUploader()
    results = asyncio.run(upload_slides(done, uploader, credential="tok", folder_id="folder"))

    assert [r.success for r in results] == [True, False]
    assert results[0].remote_id == "id-slide-1"
    assert results[1].error == "quota exceeded"
    assert uploader.seen[0] == (png_bytes, "slide-1", "tok", "folder")
    # The images themselves are untouched by the failed upload.
    assert done[1].base64 == to_data_uri(png_bytes)


def test_upload_skips_slide_without_payload():
    results = asyncio.run(
        upload_slides([SlideResult(success=True, filename="slide-1")], _FlakyUploader())
    )
    assert results[0].success is False


def test_unexpected_uploader_exception_stays_per_slide(png_bytes):
    from carousel.image_ops import to_data_uri

    class Crashing:
        async def upload(self, image, filename, credential, folder_id):
            if filename == "slide-1":
                raise AttributeError("'NoneType' object has no attribute 'json'")
            return UploadResult(success=True, filename=filename)

    done = [
        SlideResult(success=True, filename="slide-1", base64=to_data_uri(png_bytes)),
        SlideResult(success=True, filename="slide-2", base64=to_data_uri(png_bytes)),
    ]
    results = asyncio.run(upload_slides(done, Crashing()))
    assert results == [
        UploadResult(
            success=False, filename="slide-1", error="'NoneType' object has no attribute 'json'"
        ),
        UploadResult(success=True, filename="slide-2"),
    ]
