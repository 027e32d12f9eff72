"""Shared fixtures for the carousel tests.

Network access is replaced everywhere by ``httpx.MockTransport`` so the
tests never leave the process. Async code is driven with ``asyncio.run``
from plain test functions.
"""

import io
from typing import Callable, Dict

import httpx
import pytest
from PIL import Image


def make_png(size=(64, 48), color=(30, 90, 200)) -> bytes:
    img = Image.new("RGB", size, color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def image_response(png_bytes) -> Callable[..., httpx.Response]:
    """Build a 200 image response, optionally with other bytes or type."""

    def _build(content: bytes = png_bytes, content_type: str = "image/png") -> httpx.Response:
        return httpx.Response(200, content=content, headers={"content-type": content_type})

    return _build


@pytest.fixture
def routes_handler(image_response):
    """Turn ``{url: response}`` into a MockTransport handler.

    Unknown URLs answer 404. Every requested URL is appended to
    ``handler.calls`` so tests can assert what was (not) downloaded.
    """

    def _make(routes: Dict[str, httpx.Response]):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            calls.append(url)
            if url in routes:
                template = routes[url]
                return httpx.Response(
                    template.status_code, headers=template.headers, content=template.content
                )
            return httpx.Response(404)

        handler.calls = calls
        return handler

    return _make


@pytest.fixture
def cairo():
    """Skip unless CairoSVG and the native cairo library can be loaded."""
    try:
        import cairosvg  # type: ignore
    except (ImportError, OSError) as exc:
        pytest.skip(f"cairosvg unavailable: {exc}")
    return cairosvg
