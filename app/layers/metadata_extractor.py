"""
Metadata Extractor Layer for the Affiliate Link Pipeline.

Each field has an ordered list of strategy functions taking the parsed page
and returning a value or None. The first non-empty result wins, so markup
changes on the source site degrade a field to empty instead of failing the
whole extraction.
"""
import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from app.adapters.page_fetcher import FetchOutcome, FetchResult, PageFetcher
from app.layers.price_parser import parse_price
from app.models.errors import PipelineError
from app.models.metadata import ParsedPrice, ProductMetadata
from app.utils.logger import LayerLogger


Strategy = Callable[[BeautifulSoup], Any]

SHORT_TITLE_LENGTH = 80
LONG_DESCRIPTION_BULLETS = 5
UNAVAILABLE_MARKERS = ("currently unavailable", "we don't know when or if this item will be back")

THUMBNAIL_SUFFIX = re.compile(r"\._[^./]*_\.")
PAGE_PRICE_PATTERN = re.compile(r"(?:₹|Rs\.?\s?|\$|€|£)\s?\d[\d,]*(?:\.\d{1,2})?")
DECIMAL_PATTERN = re.compile(r"(\d+(?:[.,]\d+)?)")
DIGIT_GROUP_PATTERN = re.compile(r"(\d+)")

logger = LayerLogger("metadata_extractor")


# =========================================================================
# Text helpers
# =========================================================================

def clean_text(value: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty strings become None."""
    if not value:
        return None
    text = re.sub(r"\s+", " ", value).strip()
    return text or None


def shorten_title(title: Optional[str], limit: int = SHORT_TITLE_LENGTH) -> Optional[str]:
    if not title:
        return None
    if len(title) <= limit:
        return title
    return title[: limit - 3].rstrip() + "…"


def slugify(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    slug = text.lower().strip()
    slug = re.sub(r"['\"]", "", slug)
    slug = re.sub(r"[^a-z0-9]+", "-", slug).strip("-")
    return slug or None


def absolute_image_url(src: Optional[str]) -> Optional[str]:
    src = clean_text(src)
    if not src or src.startswith("data:"):
        return None
    if src.startswith("//"):
        return "https:" + src
    return src


def _select_text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    return clean_text(element.get_text(" ")) if element else None


def _select_attr(soup: BeautifulSoup, selector: str, attr: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None:
        return None
    value = element.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return clean_text(value)


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    return clean_text(tag.get("content")) if tag else None


# =========================================================================
# Title
# =========================================================================

def title_from_product_element(soup: BeautifulSoup) -> Optional[str]:
    return _select_text(soup, "#productTitle")


def title_from_meta(soup: BeautifulSoup) -> Optional[str]:
    return _meta_content(soup, name="title") or _meta_content(soup, property="og:title")


def title_from_document(soup: BeautifulSoup) -> Optional[str]:
    tag = soup.find("title")
    return clean_text(tag.get_text()) if tag else None


# =========================================================================
# Brand
# =========================================================================

BRAND_NOISE = re.compile(r"^(visit the|brand:)\s*|\s*store$", re.I)


def _clean_brand(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return clean_text(BRAND_NOISE.sub("", value))


def brand_from_byline(soup: BeautifulSoup) -> Optional[str]:
    return _clean_brand(_select_text(soup, "#bylineInfo"))


def brand_from_element(soup: BeautifulSoup) -> Optional[str]:
    return _clean_brand(_select_text(soup, "#brand"))


def brand_from_overview(soup: BeautifulSoup) -> Optional[str]:
    return _select_text(soup, "tr.po-brand td.po-break-word")


# =========================================================================
# Images
# =========================================================================

def image_from_landing_element(soup: BeautifulSoup) -> Optional[str]:
    return absolute_image_url(
        _select_attr(soup, "img#landingImage", "src")
        or _select_attr(soup, "#imgTagWrapperId img", "src")
    )


def image_from_hires_attribute(soup: BeautifulSoup) -> Optional[str]:
    hires = _select_attr(soup, "img[data-old-hires]", "data-old-hires")
    if hires:
        return absolute_image_url(hires)

    # {"<url>": [width, height], ...}; take the widest
    dynamic = soup.select_one("img[data-a-dynamic-image]")
    if dynamic is None:
        return None
    sizes = json.loads(dynamic.get("data-a-dynamic-image") or "{}")
    if not sizes:
        return None
    best = max(sizes.items(), key=lambda item: (item[1] or [0])[0])
    return absolute_image_url(best[0])


def image_from_meta(soup: BeautifulSoup) -> Optional[str]:
    return absolute_image_url(_meta_content(soup, property="og:image"))


def _normalize_thumbnail(src: str) -> str:
    return THUMBNAIL_SUFFIX.sub(".", src)


def _is_decorative(src: str) -> bool:
    lowered = src.lower()
    return lowered.endswith(".gif") or "sprite" in lowered or "play-icon" in lowered


def _collect_images(soup: BeautifulSoup, selector: str) -> List[str]:
    images: List[str] = []
    for img in soup.select(selector):
        src = absolute_image_url(img.get("data-old-hires") or img.get("src"))
        if not src or _is_decorative(src):
            continue
        src = _normalize_thumbnail(src)
        if src not in images:
            images.append(src)
    return images


def gallery_from_thumbnail_strip(soup: BeautifulSoup) -> List[str]:
    return _collect_images(soup, "#altImages img")


def gallery_from_image_thumbs(soup: BeautifulSoup) -> List[str]:
    return _collect_images(soup, ".imageThumb img")


# =========================================================================
# Price
# =========================================================================

# Newest / most specific containers first
PRICE_SELECTORS = (
    "#corePriceDisplay_desktop_feature_div .a-price .a-offscreen",
    "#corePriceDisplay_feature_div .a-price .a-offscreen",
    "#corePrice_feature_div .a-price .a-offscreen",
    "#apex_desktop .a-price .a-offscreen",
    "#desktop_buybox .a-price .a-offscreen",
    "#priceblock_dealprice",
    "#priceblock_ourprice",
    "#priceblock_saleprice",
    "#price_inside_buybox",
    "span.a-price span.a-offscreen",
)


def price_from_selectors(soup: BeautifulSoup) -> Optional[str]:
    for selector in PRICE_SELECTORS:
        text = _select_text(soup, selector)
        if text and any(ch.isdigit() for ch in text):
            return text
    return None


def price_from_page_scan(soup: BeautifulSoup) -> Optional[str]:
    body = soup.find("body") or soup
    match = PAGE_PRICE_PATTERN.search(body.get_text(" "))
    return clean_text(match.group()) if match else None


# =========================================================================
# Rating / reviews
# =========================================================================

def _parse_rating(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    match = DECIMAL_PATTERN.search(text)
    if not match:
        return None
    value = float(match.group(1).replace(",", "."))
    return value if 0.0 <= value <= 5.0 else None


def rating_from_star_label(soup: BeautifulSoup) -> Optional[float]:
    return _parse_rating(_select_text(soup, ".a-icon-star span.a-icon-alt"))


def rating_from_popover(soup: BeautifulSoup) -> Optional[float]:
    return _parse_rating(_select_attr(soup, "#acrPopover", "title"))


def _parse_count(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    match = DIGIT_GROUP_PATTERN.search(text.replace(",", ""))
    return int(match.group(1)) if match else None


def reviews_from_review_label(soup: BeautifulSoup) -> Optional[int]:
    return _parse_count(_select_text(soup, "#acrCustomerReviewText"))


def reviews_from_total_count(soup: BeautifulSoup) -> Optional[int]:
    return _parse_count(_select_text(soup, "[data-hook='total-review-count']"))


# =========================================================================
# Bullets / description / breadcrumbs
# =========================================================================

def _collect_texts(soup: BeautifulSoup, selector: str) -> List[str]:
    texts = []
    for element in soup.select(selector):
        text = clean_text(element.get_text(" "))
        if text and text not in texts:
            texts.append(text)
    return texts


def bullets_from_feature_list(soup: BeautifulSoup) -> List[str]:
    return _collect_texts(soup, "#feature-bullets li:not(#replacementPartsFitmentBullet) span.a-list-item")


def bullets_from_feature_items(soup: BeautifulSoup) -> List[str]:
    return _collect_texts(soup, "#feature-bullets li")


def description_from_product_block(soup: BeautifulSoup) -> Optional[str]:
    return _select_text(soup, "#productDescription")


def breadcrumbs_from_wayfinding(soup: BeautifulSoup) -> List[str]:
    return _collect_texts(soup, "#wayfinding-breadcrumbs_feature_div ul li a")


def breadcrumbs_from_container(soup: BeautifulSoup) -> List[str]:
    return _collect_texts(soup, "#wayfinding-breadcrumbs_container ul li a")


def breadcrumbs_from_generic(soup: BeautifulSoup) -> List[str]:
    return _collect_texts(soup, ".a-breadcrumb li a")


def is_unavailable(soup: BeautifulSoup) -> bool:
    availability = _select_text(soup, "#availability") or ""
    if any(marker in availability.lower() for marker in UNAVAILABLE_MARKERS):
        return True
    outage = _select_text(soup, "#outOfStock") or ""
    return "currently unavailable" in outage.lower()


FIELD_STRATEGIES: Dict[str, Sequence[Strategy]] = {
    "title": (title_from_product_element, title_from_meta, title_from_document),
    "brand": (brand_from_byline, brand_from_element, brand_from_overview),
    "image_url": (image_from_landing_element, image_from_hires_attribute, image_from_meta),
    "images": (gallery_from_thumbnail_strip, gallery_from_image_thumbs),
    "price_raw": (price_from_selectors, price_from_page_scan),
    "rating": (rating_from_star_label, rating_from_popover),
    "reviews_count": (reviews_from_review_label, reviews_from_total_count),
    "bullets": (bullets_from_feature_list, bullets_from_feature_items),
    "description": (description_from_product_block,),
    "category_path": (breadcrumbs_from_wayfinding, breadcrumbs_from_container, breadcrumbs_from_generic),
}


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def run_cascade(field_name: str, strategies: Sequence[Strategy], soup: BeautifulSoup) -> Any:
    """Return the first non-empty strategy result, or None."""
    for position, strategy in enumerate(strategies):
        try:
            value = strategy(soup)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.log_error(
                f"Strategy {strategy.__name__} failed: {e}",
                error_type="strategy_error",
                field=field_name
            )
            continue
        if not _is_empty(value):
            if position > 0:
                logger.log_fallback(
                    from_source=strategies[0].__name__,
                    to_source=strategy.__name__,
                    reason="Earlier strategies found nothing",
                    field=field_name
                )
            return value
    return None


@dataclass
class ScrapeResult:
    """Outcome of fetching and extracting one product page."""
    url: str
    metadata: ProductMetadata
    price: ParsedPrice
    status_code: Optional[int] = None
    error: Optional[PipelineError] = None
    attempts: int = 1
    fetch_outcomes: List[str] = field(default_factory=list)

    @property
    def unavailable(self) -> bool:
        return self.metadata.unavailable or self.status_code == 404

    @property
    def ok(self) -> bool:
        return self.error is None


class MetadataExtractor:
    """
    Runs fetch + extraction for a product page.

    Bot protection is retried once after `bot_retry_delay` seconds. Fetch
    problems never raise here; they travel on ScrapeResult.error.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        bot_retry_delay: float = 3.0,
        strategies: Optional[Dict[str, Sequence[Strategy]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.bot_retry_delay = bot_retry_delay
        self.strategies = strategies or FIELD_STRATEGIES
        self.sleep = sleep
        self.logger = logger

    def extract(self, html: Optional[str]) -> ProductMetadata:
        """Parse HTML into a metadata record. Never raises on markup."""
        if not html:
            return ProductMetadata()

        soup = BeautifulSoup(html, "lxml")
        values = {
            name: run_cascade(name, strategies, soup)
            for name, strategies in self.strategies.items()
        }

        title = values.get("title")
        image_url = values.get("image_url")
        images = list(values.get("images") or [])
        if image_url:
            images = [image_url] + [img for img in images if img != image_url]
        elif images:
            image_url = images[0]

        bullets = values.get("bullets") or []
        description = values.get("description")
        short_description = bullets[0] if bullets else None
        long_description = " ".join(bullets[:LONG_DESCRIPTION_BULLETS]) if bullets else description

        metadata = ProductMetadata(
            title=title,
            short_title=shorten_title(title),
            brand=values.get("brand"),
            slug=slugify(title),
            image_url=image_url,
            images=images,
            price_raw=values.get("price_raw"),
            rating=values.get("rating"),
            reviews_count=values.get("reviews_count"),
            bullets=bullets,
            short_description=short_description,
            long_description=long_description or None,
            category_path=values.get("category_path") or [],
            unavailable=is_unavailable(soup),
        )

        self.logger.log_extraction(
            fields_present=metadata.get_present_fields(),
            fields_missing=metadata.get_missing_fields(),
            unavailable=metadata.unavailable,
        )
        return metadata

    async def scrape(self, url: str) -> ScrapeResult:
        """
        Fetch a product page and extract its metadata.

        Returns:
            ScrapeResult with metadata, parsed price and any fetch error
        """
        self.logger.log_action("scrape", "started", url=url)

        result = await self.fetcher.fetch(url)
        outcomes = [result.outcome.value]
        attempts = 1

        if result.outcome == FetchOutcome.BOT_PROTECTION:
            self.logger.log_decision(
                decision="retry_after_bot_protection",
                reason="Bot protection page served",
                url=url,
                delay=self.bot_retry_delay
            )
            await self.sleep(self.bot_retry_delay)
            result = await self.fetcher.fetch(url)
            outcomes.append(result.outcome.value)
            attempts += 1

        return self._build_result(url, result, attempts, outcomes)

    def _build_result(
        self,
        url: str,
        result: FetchResult,
        attempts: int,
        outcomes: List[str],
    ) -> ScrapeResult:
        # Interstitial and error pages carry the site's chrome, not the
        # product, so only real content is extracted
        metadata = self.extract(result.html) if result.ok else ProductMetadata()
        price = parse_price(metadata.price_raw)
        error = result.to_error()

        if error is not None:
            self.logger.log_error(
                error.describe(),
                error_type=error.kind.value,
                url=url,
                attempts=attempts
            )
        else:
            self.logger.log_action(
                "scrape",
                "completed",
                url=url,
                price=price.amount,
                currency=price.currency,
                unavailable=metadata.unavailable
            )

        return ScrapeResult(
            url=url,
            metadata=metadata,
            price=price,
            status_code=result.status_code,
            error=error,
            attempts=attempts,
            fetch_outcomes=outcomes,
        )
