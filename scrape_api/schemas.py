from typing import Any, Dict, Optional

from pydantic import BaseModel

from core.data_models import ExtractionResult, PageMetadata


class ScrapeInput(BaseModel):
    """Request body for POST /api/scrape. url is validated by the handler."""
    url: Optional[Any] = None
    include_html: bool = False


class ScrapeOutput(BaseModel):
    """Response body for POST /api/scrape."""
    success: bool
    content: Optional[str] = None
    html: Optional[str] = None
    meta: Optional[PageMetadata] = None
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: ExtractionResult) -> "ScrapeOutput":
        return cls(
            success=result.success,
            content=result.content,
            html=result.html,
            meta=result.meta,
            error=result.error,
        )

    @classmethod
    def from_error(cls, message: str) -> "ScrapeOutput":
        return cls(success=False, error=message)

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
