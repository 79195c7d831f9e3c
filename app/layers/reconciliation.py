"""
Reconciliation Job for the Affiliate Link Pipeline.
Re-scrapes stored links to refresh prices, availability and missing metadata.

Links are processed strictly one at a time; a failure on one link is
recorded on that link and never stops the run.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.adapters.link_store import LinkStore
from app.layers.metadata_extractor import MetadataExtractor, ScrapeResult, shorten_title, slugify
from app.layers.text_rewrite import DEFAULT_SHORT_DESCRIPTION
from app.models.errors import PipelineError
from app.models.link import DEFAULT_TITLE, Link, PriceChangeReason, StatusReason, utc_now
from app.utils.logger import LayerLogger


# Link field -> metadata attribute, written only while the link lacks a value.
# A stored placeholder counts as lacking one.
FILL_IF_ABSENT = (
    ("title", "title"),
    ("image_url", "image_url"),
    ("images", "images"),
    ("rating", "rating"),
    ("reviews_count", "reviews_count"),
    ("short_description", "short_description"),
    ("long_description", "long_description"),
    ("brand", "brand"),
    ("category_path", "category_path"),
)

# Bookkeeping fields; a change limited to these does not count as an update
BOOKKEEPING_FIELDS = {"last_checked_at", "last_error"}


class ReconciliationItem(BaseModel):
    """Outcome for one link."""
    link_id: str
    status: str  # updated, unchanged, failed
    changed_fields: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ReconciliationReport(BaseModel):
    """Aggregate counters of a run."""
    processed: int = 0
    updated: int = 0
    failed: int = 0
    deactivated: int = 0
    reactivated: int = 0
    price_changes: int = 0
    items: List[ReconciliationItem] = Field(default_factory=list)


def _is_absent(value: Any) -> bool:
    return value is None or value == "" or value == []


class ReconciliationJob:
    """
    Daily maintenance over stored links.

    Iterates active links plus links this job deactivated earlier, so a
    product that comes back in stock is reactivated. Manually disabled
    links are left alone.
    """

    def __init__(
        self,
        store: LinkStore,
        extractor: MetadataExtractor,
        source: Optional[str] = None,
        default_title: str = DEFAULT_TITLE,
    ):
        self.store = store
        self.extractor = extractor
        self.source = source
        # Values written at create time when the scrape came back empty
        self.placeholders = {
            "title": default_title,
            "short_description": DEFAULT_SHORT_DESCRIPTION,
        }
        self.logger = LayerLogger("reconciliation")

    def _needs_fill(self, link: Link, field: str) -> bool:
        if link.is_curated(field):
            return False
        value = getattr(link, field)
        return _is_absent(value) or value == self.placeholders.get(field)

    async def _links_to_check(self) -> List[Link]:
        active = await self.store.find_by_source_and_active(self.source, True)
        inactive = await self.store.find_by_source_and_active(self.source, False)
        returning = [
            link for link in inactive
            if link.status_reason == StatusReason.UNAVAILABLE_ON_CHECK.value
        ]
        return active + returning

    async def run_daily(self) -> ReconciliationReport:
        """Run one reconciliation pass and return its counters."""
        report = ReconciliationReport()
        links = await self._links_to_check()

        self.logger.log_action("reconciliation", "started", links=len(links), source=self.source)

        for link in links:
            report.processed += 1
            item = await self._reconcile_one(link, report)
            report.items.append(item)
            if item.status == "updated":
                report.updated += 1
            elif item.status == "failed":
                report.failed += 1

        self.logger.log_action(
            "reconciliation",
            "completed",
            processed=report.processed,
            updated=report.updated,
            failed=report.failed,
            deactivated=report.deactivated,
            reactivated=report.reactivated,
            price_changes=report.price_changes
        )
        return report

    async def _reconcile_one(self, link: Link, report: ReconciliationReport) -> ReconciliationItem:
        url = link.canonical_url or link.raw_url
        try:
            scrape = await self.extractor.scrape(url)
            changes = self.compute_changes(link, scrape)

            # A 404 is an answer about availability, not a failed check
            if scrape.error is not None and not scrape.unavailable:
                error_text = scrape.error.describe()
                await self.store.update(link.id, {"last_checked_at": utc_now(), "last_error": error_text})
                self.logger.log_error(error_text, error_type=scrape.error.kind.value, link_id=link.id)
                return ReconciliationItem(link_id=link.id, status="failed", error=error_text)

            changed_fields = sorted(set(changes) - BOOKKEEPING_FIELDS)
            await self.store.update(link.id, changes)
        except PipelineError as e:
            return await self._record_failure(link, e.describe(), e.kind.value)
        except Exception as e:
            return await self._record_failure(link, f"unexpected: {str(e)}", "unexpected")

        if changes.get("is_active") is False:
            report.deactivated += 1
        elif changes.get("is_active") is True:
            report.reactivated += 1
        if "price" in changes:
            report.price_changes += 1

        return ReconciliationItem(
            link_id=link.id,
            status="updated" if changed_fields else "unchanged",
            changed_fields=changed_fields,
        )

    async def _record_failure(self, link: Link, error_text: str, error_type: str) -> ReconciliationItem:
        self.logger.log_error(error_text, error_type=error_type, link_id=link.id)
        try:
            await self.store.update(link.id, {"last_checked_at": utc_now(), "last_error": error_text})
        except PipelineError as e:
            self.logger.log_error(e.describe(), error_type=e.kind.value, link_id=link.id)
        return ReconciliationItem(link_id=link.id, status="failed", error=error_text)

    def compute_changes(self, link: Link, scrape: ScrapeResult) -> Dict[str, Any]:
        """
        Partial update for one link from a fresh scrape.

        - a new, different price moves the old one to previous_price
        - unavailability deactivates; availability reactivates a link this
          job deactivated
        - descriptive fields are filled only while absent (or still a
          create-time placeholder) and not curated
        """
        now = utc_now()
        changes: Dict[str, Any] = {
            "last_checked_at": now,
            "last_error": scrape.error.describe() if scrape.error else None,
        }

        if scrape.unavailable:
            if link.is_active:
                changes["is_active"] = False
                changes["status_reason"] = StatusReason.UNAVAILABLE_ON_CHECK.value
                self.logger.log_decision(
                    decision="deactivate",
                    reason="Product page reports unavailable",
                    url=scrape.url,
                    link_id=link.id,
                    status_code=scrape.status_code
                )
            return changes

        if not link.is_active and link.status_reason == StatusReason.UNAVAILABLE_ON_CHECK.value:
            changes["is_active"] = True
            changes["status_reason"] = None
            self.logger.log_decision(
                decision="reactivate",
                reason="Product page available again",
                url=scrape.url,
                link_id=link.id
            )

        new_price = scrape.price.amount
        if new_price is not None and new_price != link.price and not link.is_curated("price"):
            if link.price is not None:
                changes["previous_price"] = link.price
                changes["previous_price_currency"] = link.price_currency
                changes["price_change_reason"] = PriceChangeReason.MAINTENANCE_REFRESH.value
                self.logger.log_price_change(
                    link_id=link.id,
                    old_price=link.price,
                    new_price=new_price,
                    currency=scrape.price.currency or link.price_currency
                )
            changes["price"] = new_price
            changes["price_currency"] = scrape.price.currency or link.price_currency
            changes["price_raw"] = scrape.price.raw

        metadata = scrape.metadata
        for link_field, meta_field in FILL_IF_ABSENT:
            if not self._needs_fill(link, link_field):
                continue
            value = getattr(metadata, meta_field)
            if not _is_absent(value):
                changes[link_field] = value

        if "title" in changes:
            changes["short_title"] = metadata.short_title or shorten_title(changes["title"])
            changes["slug"] = metadata.slug or slugify(changes["title"])
            self.logger.log_decision(
                decision="replace_placeholder_title",
                reason="Stored title was missing or a placeholder",
                link_id=link.id,
                title=changes["title"]
            )

        return changes
