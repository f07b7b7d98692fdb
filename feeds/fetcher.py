"""HTTP fetcher for iCal booking feeds."""
import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of fetching one feed."""
    ok: bool
    text: str = ''
    status_code: Optional[int] = None
    error: Optional[str] = None


class IcalFeedFetcher:
    """Fetches raw iCal text with cache busting and retries."""

    NO_CACHE_HEADERS = {
        'Cache-Control': 'no-cache',
        'Pragma': 'no-cache',
    }

    def __init__(self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per feed before giving up (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay

    def fetch(self, url: str) -> FetchResult:
        """
        Fetch a feed, never raising on network or HTTP errors.

        Network errors, timeouts, 5xx and 429 responses are retried with
        exponential backoff. Other non-2xx responses fail immediately.

        Args:
            url: iCal feed URL

        Returns:
            FetchResult with ok=False on any failure
        """
        last_result = FetchResult(ok=False, error='not attempted')

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching feed {url} (attempt {attempt + 1}/{self.max_retries})")
                response = requests.get(
                    url,
                    params={'cachebust': int(time.time() * 1000)},
                    headers=self.NO_CACHE_HEADERS,
                    timeout=self.timeout
                )
                response.raise_for_status()

                if 'charset' not in response.headers.get('Content-Type', '').lower():
                    response.encoding = 'utf-8'
                return FetchResult(ok=True, text=response.text, status_code=response.status_code)

            except requests.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else None
                body = e.response.text[:500] if e.response is not None else ''
                last_result = FetchResult(
                    ok=False, status_code=status_code, error=f"HTTP {status_code}: {body}"
                )
                if status_code is not None and status_code < 500 and status_code != 429:
                    logger.error(f"Feed {url} returned HTTP {status_code}, not retrying")
                    return last_result

            except requests.RequestException as e:
                last_result = FetchResult(ok=False, error=f"{type(e).__name__}: {e}")

            if attempt < self.max_retries - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"Fetching {url} failed (attempt {attempt + 1}/{self.max_retries}): "
                    f"{last_result.error}. Retrying in {delay} seconds..."
                )
                time.sleep(delay)

        logger.error(
            f"All {self.max_retries} attempts to fetch {url} failed. Last error: {last_result.error}"
        )
        return last_result
