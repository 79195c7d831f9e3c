"""
Link Lifecycle Manager for the Affiliate Link Pipeline.
Turns submitted product URLs into stored affiliate links and serves the
per-link operations (redirect, update, delete).
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from app.adapters.link_store import LinkStore
from app.layers.affiliate import build_affiliate_url
from app.layers.category_classifier import resolve_category
from app.layers.metadata_extractor import MetadataExtractor, shorten_title, slugify
from app.layers.text_rewrite import (
    DEFAULT_SHORT_DESCRIPTION,
    ListingText,
    TextRewriteLayer,
)
from app.layers.url_normalizer import URLNormalizer
from app.models.errors import (
    BatchTooLarge,
    InvalidInputURL,
    LinkNotFound,
    PersistenceError,
    PipelineError,
)
from app.models.link import (
    DEFAULT_TITLE,
    EDITABLE_FIELDS,
    BulkCreateResult,
    BulkItemResult,
    CreateReason,
    Link,
    PriceChangeReason,
    StatusReason,
    utc_now,
)
from app.models.metadata import ParsedPrice, ProductMetadata
from app.utils.logger import LayerLogger


@dataclass
class LinkManagerSettings:
    """Explicit configuration for the lifecycle manager."""
    affiliate_tag: str = ""
    tag_param: str = "tag"
    max_bulk_urls: int = 10
    default_title: str = DEFAULT_TITLE


def validate_input_url(url: Optional[str]) -> str:
    """
    Return a usable absolute URL or raise InvalidInputURL.

    A bare host ("amazon.in/dp/...") gets an https scheme.
    """
    candidate = (url or "").strip()
    if not candidate:
        raise InvalidInputURL("url is required")
    if "://" not in candidate:
        candidate = "https://" + candidate.lstrip("/")
    try:
        parts = urlsplit(candidate)
        host = parts.hostname
    except ValueError as e:
        raise InvalidInputURL(f"url could not be parsed: {e}") from e
    if parts.scheme not in ("http", "https") or not host or "." not in host:
        raise InvalidInputURL(f"not a product page url: {url}")
    return candidate


class LinkLifecycleManager:
    """
    Lifecycle manager - create, bulk create, redirect, update, delete.

    Extraction problems never fail a create: the link is stored with what
    was obtained and `last_error` set. Only an unusable URL or a store
    failure does.
    """

    def __init__(
        self,
        store: LinkStore,
        extractor: MetadataExtractor,
        normalizer: URLNormalizer,
        settings: Optional[LinkManagerSettings] = None,
        rewrite_layer: Optional[TextRewriteLayer] = None,
    ):
        self.store = store
        self.extractor = extractor
        self.normalizer = normalizer
        self.settings = settings or LinkManagerSettings()
        self.rewrite_layer = rewrite_layer or TextRewriteLayer(None)
        self.logger = LayerLogger("link_manager")

    async def create(
        self,
        url: str,
        manual_title: Optional[str] = None,
        manual_category: Optional[str] = None,
        manual_subcategory: Optional[str] = None,
        note: Optional[str] = None,
        auto_title: bool = True,
        create_reason: CreateReason = CreateReason.MANUAL_CREATE,
    ) -> Link:
        """
        Create a link from a submitted product URL.

        Args:
            url: Product URL as pasted by the user
            manual_title: Title to use when not auto-titling (or as fallback)
            manual_category: Taxonomy key overriding the classifier
            manual_subcategory: Taxonomy subcategory key
            note: Free-form dashboard note
            auto_title: Scrape the page and prefer its title

        Returns:
            The stored Link
        """
        raw_url = validate_input_url(url)
        manual_title = (manual_title or "").strip() or None

        self.logger.log_action("create_link", "started", url=raw_url, auto_title=auto_title)

        normalized = await self.normalizer.resolve(raw_url)
        canonical_url = normalized.canonical_url

        metadata = ProductMetadata()
        price = ParsedPrice()
        last_error = None

        if auto_title or not manual_title:
            scrape = await self.extractor.scrape(canonical_url)
            metadata, price = scrape.metadata, scrape.price
            if scrape.error is not None:
                last_error = scrape.error.describe()
                self.logger.log_fallback(
                    from_source="scraped_metadata",
                    to_source="partial_metadata",
                    reason=last_error,
                    url=canonical_url
                )
        else:
            self.logger.log_decision(
                decision="skip_scrape",
                reason="Manual title supplied and auto_title disabled",
                url=canonical_url
            )

        scraped_title = metadata.title if auto_title else None
        title = scraped_title or manual_title or self.settings.default_title
        title_is_manual = scraped_title is None and manual_title is not None

        category, subcategory = resolve_category(
            manual_category,
            manual_subcategory,
            metadata.category_path,
            title,
        )

        listing = ListingText(
            title=title,
            short_description=metadata.short_description or DEFAULT_SHORT_DESCRIPTION,
            long_description=metadata.long_description,
        )
        listing, report = await self.rewrite_layer.improve(listing, keep_title=title_is_manual)

        tag = self.settings.affiliate_tag or None
        now = utc_now()
        link = Link(
            source=normalized.source or "other",
            canonical_url=canonical_url,
            raw_url=(url or "").strip(),
            affiliate_url=build_affiliate_url(canonical_url, self.settings.affiliate_tag, self.settings.tag_param),
            tag=tag,
            title=listing.title,
            short_title=shorten_title(listing.title),
            brand=metadata.brand,
            slug=slugify(listing.title),
            image_url=metadata.image_url,
            images=metadata.images,
            short_description=listing.short_description,
            long_description=listing.long_description,
            category_path=metadata.category_path,
            category=category,
            subcategory=subcategory,
            note=note or None,
            price=price.amount,
            price_currency=price.currency,
            price_raw=price.raw,
            rating=metadata.rating,
            reviews_count=metadata.reviews_count,
            is_active=True,
            clicks=0,
            last_checked_at=now,
            last_error=last_error,
            create_reason=create_reason.value,
            created_at=now,
            updated_at=now,
        )

        try:
            created = await self.store.create(link)
        except PersistenceError as e:
            self.logger.log_error(e.describe(), error_type=e.kind.value, url=canonical_url)
            raise

        self.logger.log_action(
            "create_link",
            "completed",
            link_id=created.id,
            canonical_url=canonical_url,
            category=category,
            subcategory=subcategory,
            price=created.price,
            rewritten=report.rewritten,
            last_error=last_error
        )
        return created

    async def bulk_create(
        self,
        urls: Iterable[str],
        shared_category: Optional[str] = None,
        shared_subcategory: Optional[str] = None,
        shared_note: Optional[str] = None,
        auto_title: bool = True,
    ) -> BulkCreateResult:
        """
        Create links for several URLs, one at a time.

        A failing URL is reported in the result and never aborts the batch.
        """
        url_list: List[str] = [u for u in (urls or []) if u and u.strip()]
        if not url_list:
            raise InvalidInputURL("urls array is required")
        if len(url_list) > self.settings.max_bulk_urls:
            raise BatchTooLarge(
                f"at most {self.settings.max_bulk_urls} urls per request, got {len(url_list)}"
            )

        self.logger.log_action("bulk_create", "started", count=len(url_list))
        result = BulkCreateResult()

        for url in url_list:
            try:
                link = await self.create(
                    url,
                    manual_category=shared_category,
                    manual_subcategory=shared_subcategory,
                    note=shared_note,
                    auto_title=auto_title,
                    create_reason=CreateReason.BULK_CREATE,
                )
            except PipelineError as e:
                self.logger.log_error(e.describe(), error_type=e.kind.value, url=url)
                result.created.append(BulkItemResult(
                    url=url, ok=False, error=e.message, error_kind=e.kind.value
                ))
                continue
            except Exception as e:
                self.logger.log_error(
                    f"Unexpected bulk item failure: {str(e)}",
                    error_type="unexpected",
                    url=url
                )
                result.created.append(BulkItemResult(url=url, ok=False, error=str(e), error_kind="unexpected"))
                continue

            result.created.append(BulkItemResult(url=url, ok=True, id=link.id, warning=link.last_error))

        self.logger.log_action(
            "bulk_create",
            "completed",
            succeeded=len(result.succeeded),
            failed=len(result.failed)
        )
        return result

    async def redirect(self, link_id: str) -> str:
        """Count a click and return the URL to redirect to."""
        link = await self.store.increment_clicks(link_id)
        if link is None:
            raise LinkNotFound(f"link '{link_id}' not found")
        self.logger.log_action("redirect", "completed", link_id=link_id, clicks=link.clicks)
        return link.affiliate_url or link.canonical_url

    async def list_links(self) -> List[Link]:
        return await self.store.list_all()

    async def get(self, link_id: str) -> Link:
        link = await self.store.get(link_id)
        if link is None:
            raise LinkNotFound(f"link '{link_id}' not found")
        return link

    async def update(self, link_id: str, changes: Dict[str, Any]) -> Link:
        """
        Apply manual edits.

        Edited fields become curated and are never overwritten by the
        reconciliation job. Setting a field to None clears it on purpose.
        """
        current = await self.get(link_id)

        ignored = sorted(set(changes) - set(EDITABLE_FIELDS))
        if ignored:
            self.logger.log_decision(
                decision="ignore_fields",
                reason="Fields are not editable",
                link_id=link_id,
                fields=ignored
            )
        edits = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}

        # is_active has no cleared state
        if "is_active" in edits and edits["is_active"] is None:
            edits.pop("is_active")
            self.logger.log_decision(
                decision="ignore_null_is_active",
                reason="is_active must be true or false",
                link_id=link_id
            )
        update: Dict[str, Any] = dict(edits)

        if "category" in edits or "subcategory" in edits:
            category, subcategory = resolve_category(
                edits.get("category", current.category),
                edits.get("subcategory", current.subcategory if "category" not in edits else None),
                current.category_path,
                current.title,
                strict=True,
            )
            update["category"] = category
            update["subcategory"] = subcategory

        if "title" in edits:
            update["short_title"] = shorten_title(edits["title"])
            update["slug"] = slugify(edits["title"])

        if "is_active" in edits:
            if edits["is_active"]:
                update["is_active"] = True
                update["status_reason"] = None
            elif current.is_active:
                update["is_active"] = False
                update["status_reason"] = StatusReason.MANUALLY_DISABLED.value
            else:
                update.pop("is_active")

        if "price" in edits and edits["price"] != current.price:
            update["previous_price"] = current.price
            update["previous_price_currency"] = current.price_currency
            update["price_change_reason"] = PriceChangeReason.MANUAL_EDIT.value

        curated = list(current.curated_fields)
        for name in edits:
            if name not in curated:
                curated.append(name)
        update["curated_fields"] = curated

        updated = await self.store.update(link_id, update)
        if updated is None:
            raise LinkNotFound(f"link '{link_id}' not found")

        self.logger.log_action("update_link", "completed", link_id=link_id, fields=sorted(edits))
        return updated

    async def delete(self, link_id: str) -> None:
        if not await self.store.delete(link_id):
            raise LinkNotFound(f"link '{link_id}' not found")
        self.logger.log_action("delete_link", "completed", link_id=link_id)
