import os
from datetime import datetime, timezone
from typing import List

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .schemas import ScrapeInput, ScrapeOutput
from core import scraper
from core.data_models import ExtractionRequest
from utils.error_utils import ScrapeError, ScrapeValidationError

# ---------------------------------------------------------------------------
# Load environment from project-level .env
# ---------------------------------------------------------------------------

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
load_dotenv(os.path.join(BASE_DIR, ".env"))


def _cors_origins() -> List[str]:
    raw = os.getenv("SCRAPE_CORS_ORIGINS", "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


app = FastAPI(title="Page Scrape Service", version="1.0.0")

# The agent UI calls this service straight from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ScrapeOutput.from_error(message).to_body(),
    )


@app.exception_handler(RequestValidationError)
async def _malformed_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("scrape_api: malformed request body: {}", exc.errors())
    return _error_response("Malformed request body", 400)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/api/scrape", response_model=ScrapeOutput, response_model_exclude_none=True)
def post_scrape(payload: ScrapeInput):
    """Fetch a URL and return its cleaned main content (and cleaned HTML on request)."""
    try:
        request = ExtractionRequest.build(payload.url, payload.include_html)
    except ScrapeValidationError as exc:
        logger.warning("scrape_api: rejected request: {}", exc.message)
        return _error_response(exc.message, exc.status_code)

    logger.info("scrape_api: received request for url={} at {}", request.url, _utc_now())

    try:
        result = scraper.scrape(request)
    except ScrapeError as exc:
        logger.error(
            "scrape_api: {} for url={} at {}: {}",
            exc.kind.value,
            request.url,
            _utc_now(),
            exc.message,
        )
        return _error_response(exc.message, exc.status_code)
    except Exception as exc:  # noqa: BLE001
        logger.exception("scrape_api: unhandled error for url={}", request.url)
        return _error_response(f"Unexpected error during web scrape: {exc}", 500)

    return ScrapeOutput.from_result(result)
