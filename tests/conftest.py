"""
Shared fixtures: a scripted page fetcher, product page builders and
pre-wired pipeline components.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

import pytest

from app.adapters.link_store import InMemoryLinkStore
from app.adapters.page_fetcher import FetchOutcome, FetchResult
from app.layers.link_manager import LinkLifecycleManager, LinkManagerSettings
from app.layers.metadata_extractor import MetadataExtractor
from app.layers.reconciliation import ReconciliationJob
from app.layers.url_normalizer import URLNormalizer
from app.models.link import Link


PRODUCT_URL = "https://www.amazon.in/dp/B0ABCDEFGH"
OTHER_PRODUCT_URL = "https://www.amazon.in/dp/B0ZZZZZZZZ"

BOT_PAGE = (
    "<html><body><p>To discuss automated access to Amazon data please contact "
    "api-services-support@amazon.com.</p></body></html>"
)


def build_product_html(
    title: str = "boAt Rockerz 450 Bluetooth On Ear Headphones",
    price: Optional[str] = "₹1,499.00",
    availability: str = "In stock",
    bullets: Optional[List[str]] = None,
) -> str:
    if bullets is None:
        bullets = [
            "Playback: up to 15 hours of continuous music on a single charge.",
            "Drivers: 40mm dynamic drivers for immersive audio.",
        ]
    bullet_html = "".join(f'<li><span class="a-list-item">{b}</span></li>' for b in bullets)
    price_html = (
        '<div id="corePriceDisplay_desktop_feature_div"><span class="a-price">'
        f'<span class="a-offscreen">{price}</span></span></div>'
        if price else ""
    )
    return f"""<html>
<head>
  <title>Amazon.in: {title}</title>
  <meta property="og:image" content="https://m.media-amazon.com/images/I/og.jpg">
</head>
<body>
  <div id="wayfinding-breadcrumbs_feature_div">
    <ul><li><a href="#">Electronics</a></li><li><a href="#">Headphones</a></li></ul>
  </div>
  <span id="productTitle">  {title}  </span>
  <a id="bylineInfo" href="#">Visit the boAt Store</a>
  {price_html}
  <i class="a-icon-star"><span class="a-icon-alt">4.1 out of 5 stars</span></i>
  <span id="acrCustomerReviewText">12,345 ratings</span>
  <div id="imgTagWrapperId">
    <img id="landingImage" src="https://m.media-amazon.com/images/I/main._SX300_.jpg">
  </div>
  <div id="altImages"><ul>
    <li><img src="https://m.media-amazon.com/images/I/alt1._SS40_.jpg"></li>
    <li><img src="https://m.media-amazon.com/images/G/sprite.gif"></li>
    <li><img src="https://m.media-amazon.com/images/I/alt2._SS40_.jpg"></li>
  </ul></div>
  <div id="feature-bullets"><ul>{bullet_html}</ul></div>
  <div id="availability"><span>{availability}</span></div>
</body>
</html>"""


def page(url: str, html: str, status_code: int = 200) -> FetchResult:
    return FetchResult(
        outcome=FetchOutcome.SUCCESS if status_code < 400 else FetchOutcome.HTTP_ERROR,
        url=url,
        final_url=url,
        status_code=status_code,
        html=html,
        error=f"HTTP {status_code}" if status_code >= 400 else None,
    )


def bot_page(url: str) -> FetchResult:
    return FetchResult(
        outcome=FetchOutcome.BOT_PROTECTION,
        url=url,
        final_url=url,
        status_code=503,
        html=BOT_PAGE,
    )


def network_failure(url: str) -> FetchResult:
    return FetchResult(outcome=FetchOutcome.NETWORK_ERROR, url=url, error="ConnectError: refused")


class FakeFetcher:
    """
    Scripted stand-in for PageFetcher.

    `pages` maps a URL to one FetchResult or a list consumed in order
    (the last one repeats). Unknown URLs fail as network errors.
    """

    def __init__(
        self,
        pages: Optional[Dict[str, Union[FetchResult, List[FetchResult]]]] = None,
        redirects: Optional[Dict[str, Optional[str]]] = None,
    ):
        self.pages = dict(pages or {})
        self.redirects = dict(redirects or {})
        self.calls: List[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        scripted = self.pages.get(url)
        if scripted is None:
            return network_failure(url)
        if isinstance(scripted, list):
            return scripted.pop(0) if len(scripted) > 1 else scripted[0]
        return scripted

    async def resolve_redirect(self, url: str) -> Optional[str]:
        return self.redirects.get(url)


async def _no_sleep(_delay: float) -> None:
    return None


def make_link(**overrides) -> Link:
    data = {
        "canonical_url": PRODUCT_URL,
        "raw_url": PRODUCT_URL + "?ref=sr_1_1",
        "affiliate_url": PRODUCT_URL + "?tag=test-21",
        "tag": "test-21",
        "title": "boAt Rockerz 450 Bluetooth On Ear Headphones",
        "category": "electronics",
        "subcategory": "audio",
        "price": 999.0,
        "price_currency": "INR",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return Link(**data)


@pytest.fixture
def product_html():
    return build_product_html


@pytest.fixture
def store():
    return InMemoryLinkStore()


@pytest.fixture
def fetcher():
    return FakeFetcher({PRODUCT_URL: page(PRODUCT_URL, build_product_html())})


@pytest.fixture
def extractor(fetcher):
    return MetadataExtractor(fetcher, bot_retry_delay=0, sleep=_no_sleep)


@pytest.fixture
def manager(store, extractor, fetcher):
    return LinkLifecycleManager(
        store=store,
        extractor=extractor,
        normalizer=URLNormalizer(fetcher),
        settings=LinkManagerSettings(affiliate_tag="test-21"),
    )


@pytest.fixture
def reconciliation(store, extractor):
    return ReconciliationJob(store, extractor)
