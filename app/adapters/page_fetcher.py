"""
Page Fetcher Adapter for the Affiliate Link Pipeline.
Performs the outbound request for a product page and classifies the response.
"""
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from app.models.errors import (
    BotProtectionDetected,
    HttpError,
    NetworkError,
    PipelineError,
)
from app.utils.logger import LayerLogger


# Phrases that only appear on anti-scraping interstitials
BOT_PROTECTION_MARKERS = (
    "To discuss automated access to Amazon data",
    "Enter the characters you see below",
    "Sorry, we just need to make sure you're not a robot",
    "api-services-support@amazon.com",
)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
)


class FetchOutcome(str, Enum):
    """Classification of a page fetch."""
    SUCCESS = "success"
    BOT_PROTECTION = "bot_protection"
    HTTP_ERROR = "http_error"
    NETWORK_ERROR = "network_error"


@dataclass
class FetchResult:
    """Result of a page fetch."""
    outcome: FetchOutcome
    url: str
    final_url: Optional[str] = None
    status_code: Optional[int] = None
    html: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == FetchOutcome.SUCCESS

    def to_error(self) -> Optional[PipelineError]:
        """Map a failed outcome onto the pipeline error taxonomy."""
        if self.outcome == FetchOutcome.BOT_PROTECTION:
            return BotProtectionDetected("bot protection page detected", self.status_code)
        if self.outcome == FetchOutcome.HTTP_ERROR:
            return HttpError(self.error or "upstream returned an error status", self.status_code)
        if self.outcome == FetchOutcome.NETWORK_ERROR:
            return NetworkError(self.error or "request failed")
        return None


def is_bot_page(html: str) -> bool:
    return any(marker in html for marker in BOT_PROTECTION_MARKERS)


class PageFetcher:
    """
    Outbound HTTP adapter.

    Never raises for upstream problems: every response (or failure to get
    one) is classified into a FetchResult.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        max_redirects: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.transport = transport
        self.logger = LayerLogger("page_fetcher")

    def _get_headers(self) -> dict:
        """Get request headers mimicking a browser."""
        return {
            "User-Agent": random.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "en-IN,en;q=0.9",
            "DNT": "1",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
            transport=self.transport,
        )

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a product page.

        Args:
            url: Canonical product URL

        Returns:
            FetchResult classified as success, bot protection,
            HTTP error or network error
        """
        self.logger.log_action("fetch_page", "started", url=url)

        try:
            async with self._client() as client:
                response = await client.get(url, headers=self._get_headers())
        except httpx.HTTPError as e:
            result = FetchResult(
                outcome=FetchOutcome.NETWORK_ERROR,
                url=url,
                error=f"{type(e).__name__}: {e}",
            )
            self.logger.log_error(
                f"Failed to fetch URL: {result.error}",
                error_type="network_error",
                url=url
            )
            return result

        html = response.text
        final_url = str(response.url)

        # Bot pages are often served with 503, so check the body first
        if is_bot_page(html):
            outcome = FetchOutcome.BOT_PROTECTION
        elif response.status_code >= 400:
            outcome = FetchOutcome.HTTP_ERROR
        else:
            outcome = FetchOutcome.SUCCESS

        result = FetchResult(
            outcome=outcome,
            url=url,
            final_url=final_url,
            status_code=response.status_code,
            html=html,
            error=f"HTTP {response.status_code}" if outcome == FetchOutcome.HTTP_ERROR else None,
        )

        self.logger.log_fetch(
            url=url,
            status_code=response.status_code,
            outcome=outcome.value,
            final_url=final_url,
            content_length=len(html),
        )
        return result

    async def resolve_redirect(self, url: str) -> Optional[str]:
        """
        Follow redirects from a short link to its final destination.

        Returns:
            The final URL, or None if the chain could not be followed
        """
        self.logger.log_action("resolve_redirect", "started", url=url)

        try:
            async with self._client() as client:
                response = await client.get(url, headers=self._get_headers())
        except httpx.HTTPError as e:
            self.logger.log_error(
                f"Failed to resolve short link: {type(e).__name__}: {e}",
                error_type="network_error",
                url=url
            )
            return None

        final_url = str(response.url)
        self.logger.log_action(
            "resolve_redirect",
            "completed",
            url=url,
            final_url=final_url,
            hops=len(response.history),
        )
        return final_url
