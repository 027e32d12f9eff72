import os
import logging
import traceback

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from carousel.batch import run_batch, upload_slides
from carousel.errors import BatchValidationError
from carousel.fetcher import build_client
from carousel.models import CarouselRequest, CarouselResponse, UploadResult
from carousel.rate_limit import RateLimiter, client_identity
from carousel.storage import IMAGE_LIBRARY_DIR, STORAGE_BACKEND, get_uploader

# --- Environment & Config ---
APP_ENV = os.getenv("APP_ENV", "production").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
RATE_LIMIT = int(os.getenv("RATE_LIMIT", "10"))
RATE_LIMIT_WINDOW = float(os.getenv("RATE_LIMIT_WINDOW", "60"))

logger = logging.getLogger("carousel.api")


def _configure_logging() -> None:
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("carousel").setLevel(level)


_configure_logging()
logger.info("[startup] environment=%s storage=%s", APP_ENV, STORAGE_BACKEND)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

rate_limiter = RateLimiter(limit=RATE_LIMIT, window=RATE_LIMIT_WINDOW)

# --- App Init ---
app = FastAPI(title="Carousel API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # adjust in prod
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Uploads made with the local storage backend are written into
# IMAGE_LIBRARY_DIR; expose them under /image_library so the view and
# download links returned to the client resolve.
if STORAGE_BACKEND == "local":
    os.makedirs(IMAGE_LIBRARY_DIR, exist_ok=True)
    app.mount("/image_library", StaticFiles(directory=IMAGE_LIBRARY_DIR), name="image_library")


# --- Middleware ---
@app.middleware("http")
async def add_cache_control_header(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/image_library/"):
        response.headers["Cache-Control"] = "public, max-age=604800, immutable"
    return response


def _http_client() -> httpx.AsyncClient:
    """Client shared by every download in one batch."""
    return build_client()


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
        headers={"Access-Control-Allow-Origin": "*"},
    )


# --- Health ---
@app.get("/health")
async def health():
    return {"status": "healthy"}


# --- Carousel Endpoint ---
@app.options("/carousel")
async def carousel_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # Any verb other than POST or OPTIONS on /carousel lands here.
    if exc.status_code == 405 and request.url.path == "/carousel":
        return _error(405, "Method not allowed. Use POST.")
    return await http_exception_handler(request, exc)


@app.post("/carousel")
async def carousel_endpoint(request: Request):
    """Generate carousel slides from background URLs and slide text.

    Every slide is rendered independently; slides whose background cannot
    be downloaded or decoded are listed under ``failed`` while the rest are
    still returned. Validation problems reject the whole request with a
    400 before anything is downloaded.
    """
    if not rate_limiter.hit(client_identity(request.headers)):
        return _error(429, f"Rate limit exceeded. Maximum {rate_limiter.limit} requests per minute.")

    try:
        try:
            payload = await request.json()
        except ValueError:
            return _error(400, "Request body must be valid JSON.")
        if not isinstance(payload, dict):
            return _error(400, "Request body must be a JSON object.")

        try:
            body = CarouselRequest.model_validate(payload)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            return _error(400, f"Invalid request: {location}: {first.get('msg')}")

        try:
            async with _http_client() as client:
                result = await run_batch(
                    body.backgrounds, body.slides, body.width, body.height, client=client
                )
        except BatchValidationError as exc:
            return _error(400, str(exc))

        upload_results = []
        if body.upload_requested and result.successful:
            try:
                uploader = get_uploader()
            except ValueError as exc:
                logger.warning("Upload skipped: %s", exc)
                upload_results = [
                    UploadResult(success=False, filename=slide.filename, error=str(exc))
                    for slide in result.successful
                ]
            else:
                upload_results = await upload_slides(
                    result.successful,
                    uploader,
                    credential=body.upload_credential,
                    folder_id=body.upload_folder,
                )

        response = CarouselResponse(
            images=result.successful,
            failed=result.failed or None,
            upload_results=upload_results or None,
            stats=result.stats,
        )
        return JSONResponse(
            content=response.model_dump(by_alias=True, exclude_none=True),
            headers={"Access-Control-Allow-Origin": "*"},
        )
    except Exception as exc:
        logger.exception("Error in carousel handler")
        extra = {}
        if APP_ENV != "production":
            extra = {"detail": str(exc), "trace": traceback.format_exc()}
        return _error(500, "Internal server error", **extra)
