import os
from typing import Optional

import requests
from loguru import logger

from utils.error_utils import FetchError

FETCH_TIMEOUT_SECONDS = float(os.getenv("SCRAPE_FETCH_TIMEOUT_SECONDS", "10"))
USER_AGENT = os.getenv(
    "SCRAPE_USER_AGENT",
    "PageScrapeBot/1.0 (+https://example.com)",
)


def fetch_html(
    url: str,
    timeout: Optional[float] = None,
    max_attempts: int = 1,
) -> str:
    """
    Fetch a URL and return its body as text.

    Raises FetchError carrying the upstream status code when the server answered
    with a non-2xx status, or no status at all on transport failures. Retries are
    opt-in through max_attempts; the default is a single attempt.
    """
    timeout = FETCH_TIMEOUT_SECONDS if timeout is None else timeout
    last_error = FetchError("Failed to fetch URL")

    max_attempts = max(1, max_attempts)
    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug("HTTP fetch attempt {} for {}", attempt, url)
            resp = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
        except requests.RequestException as exc:
            logger.warning("HTTP fetch error on attempt {} for {}: {}", attempt, url, exc)
            last_error = FetchError(f"Failed to fetch URL: {exc}")
            continue

        if not 200 <= resp.status_code < 300:
            last_error = FetchError(
                f"Failed to fetch URL: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
            continue

        return resp.text

    logger.error(
        "Failed to fetch {} after {} attempts. Last error: {}",
        url,
        max_attempts,
        last_error.message,
    )
    raise last_error
