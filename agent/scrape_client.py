import os
from typing import Any, Dict, Optional

import requests
from loguru import logger

from core import scraper
from core.data_models import ExtractionRequest, ExtractionResult
from core.extraction import PARSE_FAILURE_MESSAGE
from utils.error_utils import ErrorKind, ScrapeError

SCRAPE_API_URL = os.getenv("SCRAPE_API_URL", "http://127.0.0.1:8001/api/scrape")
SCRAPE_API_TIMEOUT_SECONDS = float(os.getenv("SCRAPE_API_TIMEOUT_SECONDS", "15"))


def _kind_for_failure(status_code: int, message: str) -> ErrorKind:
    if status_code == 400:
        return ErrorKind.VALIDATION
    if message.startswith(PARSE_FAILURE_MESSAGE):
        return ErrorKind.PARSE
    return ErrorKind.FETCH


def _decode_body(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def request_extraction(
    request: ExtractionRequest,
    endpoint: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ExtractionResult:
    """
    Ask the scrape service to extract request.url.

    Never raises: transport errors, non-2xx statuses and unexpected bodies all
    come back as failed results with a human-readable error.
    """
    endpoint = endpoint or SCRAPE_API_URL
    timeout = SCRAPE_API_TIMEOUT_SECONDS if timeout is None else timeout
    payload = {"url": request.url, "include_html": request.include_html}

    try:
        resp = requests.post(endpoint, json=payload, timeout=timeout)
    except requests.RequestException as exc:
        logger.error("Error calling scrape service at {}: {}", endpoint, exc)
        return ExtractionResult.failure(ErrorKind.FETCH, f"Failed to reach scrape service: {exc}")

    data = _decode_body(resp)

    if not 200 <= resp.status_code < 300:
        message = data.get("error") or f"HTTP {resp.status_code}"
        logger.warning(
            "Scrape service returned HTTP {} for {}: {}",
            resp.status_code,
            request.url,
            message,
        )
        return ExtractionResult.failure(_kind_for_failure(resp.status_code, message), message)

    if data.get("success") is not True:
        message = data.get("error") or "Scrape service returned an unexpected response"
        return ExtractionResult.failure(_kind_for_failure(resp.status_code, message), message)

    return ExtractionResult.ok(
        content=data.get("content") or "",
        html=data.get("html") if request.include_html else None,
        meta=data.get("meta"),
    )


def scrape_in_process(request: ExtractionRequest) -> ExtractionResult:
    """Fetch and extract without going through the HTTP service."""
    try:
        return scraper.scrape(request)
    except ScrapeError as exc:
        return ExtractionResult.failure(exc.kind, exc.message)
