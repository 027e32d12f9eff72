"""Pydantic models for the carousel endpoint.

Field names on the wire are camelCase (``textColor``, ``totalSlides``) to
match what the frontend sends and expects. Python code uses the snake_case
attribute names; serialise with ``model_dump(by_alias=True, exclude_none=True)``.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

DEFAULT_TEXT_COLOR = "#FFFFFF"
DEFAULT_DIMENSION = 1080


class SlideSpec(BaseModel):
    """Text to draw on one slide.

    Attributes:
        title: Large bold line; omitted or blank means no title block.
        subtitle: Smaller line; omitted or blank means no subtitle block.
        text_color: Fill colour for both blocks.
        font_family: Name looked up in the overlay font table.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    subtitle: Optional[str] = None
    text_color: Optional[str] = Field(DEFAULT_TEXT_COLOR, alias="textColor")
    font_family: Optional[str] = Field(None, alias="fontFamily")


class CarouselRequest(BaseModel):
    """Body of ``POST /carousel``.

    The list fields default to empty so that missing arrays reach batch
    validation and are reported with the same message as empty ones.
    """

    model_config = ConfigDict(populate_by_name=True)

    backgrounds: List[str] = Field(default_factory=list)
    slides: List[SlideSpec] = Field(default_factory=list)
    width: int = DEFAULT_DIMENSION
    height: int = DEFAULT_DIMENSION
    upload_requested: bool = Field(
        False,
        validation_alias=AliasChoices("uploadRequested", "uploadToDrive", "upload_requested"),
    )
    upload_credential: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("uploadCredential", "driveToken", "upload_credential"),
    )
    upload_folder: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("uploadFolder", "driveFolderId", "upload_folder"),
    )


class SlideResult(BaseModel):
    """Outcome of one slide, successful or not."""

    success: bool
    filename: str
    base64: Optional[str] = None
    error: Optional[str] = None


class Dimensions(BaseModel):
    width: int
    height: int


class BatchStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total_slides: int = Field(alias="totalSlides")
    successful: int
    failed: int
    generation_time_ms: int = Field(alias="generationTimeMs")
    dimensions: Dimensions


class UploadResult(BaseModel):
    """Outcome of uploading one slide to the storage backend."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    filename: str
    remote_id: Optional[str] = Field(None, alias="remoteId")
    view_link: Optional[str] = Field(None, alias="viewLink")
    download_link: Optional[str] = Field(None, alias="downloadLink")
    error: Optional[str] = None


class CarouselResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    images: List[SlideResult]
    failed: Optional[List[SlideResult]] = None
    upload_results: Optional[List[UploadResult]] = Field(None, alias="uploadResults")
    stats: BatchStats
