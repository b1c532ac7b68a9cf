from typing import Callable, Optional

from loguru import logger

from core.data_models import ExtractionRequest, ExtractionResult
from core.extraction import PARSE_FAILURE_MESSAGE, extract
from utils.error_utils import FetchError, ParseError
from utils.http_utils import fetch_html


def scrape(
    request: ExtractionRequest,
    fetch_fn: Optional[Callable[[str], str]] = None,
) -> ExtractionResult:
    """
    Fetch request.url and run the extraction pipeline over it.

    Raises FetchError when the page is unreachable or empty and ParseError when
    the payload cannot be parsed; a returned result is always a success.
    """
    fetch = fetch_fn or fetch_html
    html = fetch(request.url)
    if not html:
        raise FetchError("No data received from URL", status_code=500)

    result = extract(html, include_html=request.include_html)
    if not result.success:
        raise ParseError(result.error or PARSE_FAILURE_MESSAGE)

    logger.info(
        "scrape: {} -> {} chars of content (payload {} chars)",
        request.url,
        len(result.content or ""),
        len(html),
    )
    return result
