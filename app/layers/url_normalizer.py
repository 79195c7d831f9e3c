"""
URL Normalizer Layer for the Affiliate Link Pipeline.
Reduces submitted product URLs to a stable identifier-based form.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

from app.adapters.page_fetcher import PageFetcher
from app.utils.logger import LayerLogger


PRODUCT_ID_PATTERN = re.compile(r"^[A-Za-z0-9]{10}$")

DEFAULT_SHORT_LINK_HOSTS = ("amzn.to", "amzn.in", "amzn.eu", "amzn.asia", "a.co")

logger = LayerLogger("url_normalizer")


@dataclass
class NormalizedURL:
    """Result of URL normalization."""
    canonical_url: str
    product_id: Optional[str]
    source: Optional[str]


def _host(url: str) -> Optional[str]:
    try:
        host = urlsplit(url.strip()).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def detect_source(host: Optional[str], short_link_hosts: Iterable[str] = DEFAULT_SHORT_LINK_HOSTS) -> Optional[str]:
    """Partner identifier for a host, e.g. www.amazon.in -> "amazon"."""
    if not host:
        return None
    if host in short_link_hosts or "amazon." in host:
        return "amazon"
    labels = [label for label in host.split(".") if label and label != "www"]
    if len(labels) >= 2:
        return labels[-2]
    return labels[0] if labels else None


def is_short_link(url: str, short_link_hosts: Iterable[str] = DEFAULT_SHORT_LINK_HOSTS) -> bool:
    host = _host(url)
    return bool(host) and host in short_link_hosts


def extract_product_id(path: str) -> Optional[str]:
    """
    First identifier found after a /dp/ or /gp/product/ segment.

    Handles slugged paths such as /Some-Product-Name/dp/B0ABCDEFGH/ref=sr_1_1.
    """
    segments: List[str] = [s for s in path.split("/") if s]
    for i, segment in enumerate(segments):
        candidate = None
        if segment.lower() == "dp" and i + 1 < len(segments):
            candidate = segments[i + 1]
        elif (
            segment.lower() == "gp"
            and i + 2 < len(segments)
            and segments[i + 1].lower() == "product"
        ):
            candidate = segments[i + 2]
        if candidate and PRODUCT_ID_PATTERN.match(candidate):
            return candidate.upper()
    return None


def normalize_url(url: str) -> NormalizedURL:
    """
    Canonicalize a product URL.

    Returns https://<host>/dp/<ID> with the query stripped when an
    identifier is found; otherwise the input is returned unchanged,
    query included.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        logger.log_decision(
            decision="keep_original",
            reason="URL could not be parsed",
            url=url
        )
        return NormalizedURL(canonical_url=url, product_id=None, source=None)

    host = (parts.hostname or "").lower()
    if not parts.scheme or not host:
        return NormalizedURL(canonical_url=url, product_id=None, source=None)

    source = detect_source(host)
    product_id = extract_product_id(parts.path)
    if not product_id:
        logger.log_decision(
            decision="keep_original",
            reason="No product identifier in path",
            url=url
        )
        return NormalizedURL(canonical_url=url, product_id=None, source=source)

    netloc = host if not parts.port else f"{host}:{parts.port}"
    canonical = urlunsplit(("https", netloc, f"/dp/{product_id}", "", ""))
    return NormalizedURL(canonical_url=canonical, product_id=product_id, source=source)


class URLNormalizer:
    """
    Normalizer with short-link resolution.

    Short links carry no identifier in their path, so they are followed
    through the page fetcher first and the destination is normalized.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        short_link_hosts: Iterable[str] = DEFAULT_SHORT_LINK_HOSTS,
    ):
        self.fetcher = fetcher
        self.short_link_hosts = tuple(short_link_hosts)
        self.logger = logger

    async def resolve(self, url: str) -> NormalizedURL:
        """Resolve short links, then normalize."""
        if not is_short_link(url, self.short_link_hosts):
            return normalize_url(url)

        self.logger.log_decision(
            decision="resolve_short_link",
            reason="Host is a known short-link domain",
            url=url
        )
        final_url = await self.fetcher.resolve_redirect(url)
        if not final_url or is_short_link(final_url, self.short_link_hosts):
            self.logger.log_fallback(
                from_source="redirect_resolution",
                to_source="original_url",
                reason="Short link did not resolve to a product page",
                url=url,
                final_url=final_url
            )
            result = normalize_url(url)
            result.source = detect_source(_host(url), self.short_link_hosts)
            return result

        return normalize_url(final_url)
