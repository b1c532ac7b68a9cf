import time
import uuid
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from utils.error_utils import ErrorKind, ScrapeValidationError


# ------------------------------------------------------------
# Page Metadata
# ------------------------------------------------------------
class PageMetadata(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    favicon: Optional[str] = None


# ------------------------------------------------------------
# Extraction request / result
# ------------------------------------------------------------
class ExtractionRequest(BaseModel):
    """One scrape invocation: which page, and whether cleaned HTML comes back."""

    model_config = ConfigDict(frozen=True)

    url: str
    include_html: bool = False

    @classmethod
    def build(cls, url: Any, include_html: Any = False) -> "ExtractionRequest":
        """
        Validate raw (untrusted) arguments and build a request.

        Raises ScrapeValidationError with a user-facing message; pydantic's own
        ValidationError never escapes from here.
        """
        if not isinstance(url, str) or not url.strip():
            raise ScrapeValidationError("URL is required")

        url = url.strip()
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ScrapeValidationError(f"Invalid URL: {url}")

        if isinstance(include_html, str):
            include_html = include_html.strip().lower() in ("true", "1", "yes")

        return cls(url=url, include_html=bool(include_html))


class ExtractionResult(BaseModel):
    success: bool
    content: Optional[str] = None
    html: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    meta: Optional[PageMetadata] = None

    @model_validator(mode="after")
    def _error_iff_failure(self) -> "ExtractionResult":
        if self.success and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.success and not self.error:
            raise ValueError("failed result must carry an error message")
        return self

    @classmethod
    def ok(
        cls,
        content: str,
        html: Optional[str] = None,
        meta: Optional[PageMetadata] = None,
    ) -> "ExtractionResult":
        return cls(success=True, content=content, html=html, meta=meta)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "ExtractionResult":
        return cls(success=False, error=message, error_kind=kind)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict; absent optionals are dropped rather than sent as null."""
        return self.model_dump(mode="json", exclude_none=True)


# ------------------------------------------------------------
# Agent session events
# ------------------------------------------------------------
class ToolCall(BaseModel):
    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _none_args_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class ToolCallEvent(BaseModel):
    """Accepts the session wire shape {"functionCalls": [...]} as well as the field name."""

    model_config = ConfigDict(populate_by_name=True)

    function_calls: List[ToolCall] = Field(default_factory=list, alias="functionCalls")


class ToolResponse(BaseModel):
    id: str
    output: Dict[str, Any]

    def to_wire(self) -> Dict[str, Any]:
        return {"id": self.id, "response": {"output": self.output}}


# ------------------------------------------------------------
# Media sources (owned by the presentation layer)
# ------------------------------------------------------------
def _new_source_id() -> str:
    return uuid.uuid4().hex


def _now_ms() -> int:
    return int(time.time() * 1000)


class _BaseMediaSource(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=_new_source_id)
    timestamp: int = Field(default_factory=_now_ms)
    title: Optional[str] = None


class ScreenMediaSource(_BaseMediaSource):
    type: Literal["screen"] = "screen"
    stream: Any = None


class WebcamMediaSource(_BaseMediaSource):
    type: Literal["webcam"] = "webcam"
    stream: Any = None


class ScrapeMediaSource(_BaseMediaSource):
    type: Literal["scrape"] = "scrape"
    content: str
    url: str
    html: Optional[str] = None
    metadata: Optional[PageMetadata] = None


MediaSource = Annotated[
    Union[ScreenMediaSource, WebcamMediaSource, ScrapeMediaSource],
    Field(discriminator="type"),
]
