"""
Text Rewrite Layer for the Affiliate Link Pipeline.
Optionally improves low-quality scraped listing text through a rewrite
collaborator (Claude).

COMPREHENSIVE LOGGING:
- Every decision to rewrite or skip is logged with its reason
- Success/failure with reasons
- Failures fall back to the scraped text
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from app.utils.logger import LayerLogger


DEFAULT_SHORT_DESCRIPTION = "This product is a simple, useful pick for daily life."

MIN_SHORT_DESCRIPTION_LENGTH = 40
MIN_LONG_DESCRIPTION_LENGTH = 120

FILLER_PHRASES = (
    DEFAULT_SHORT_DESCRIPTION.lower(),
    "see more product details",
    "click here",
    "lorem ipsum",
    "make sure this fits",
    "read more",
)


class TextRewriter(Protocol):
    """Collaborator contract. ClaudeClient implements it."""

    def is_available(self) -> bool:
        ...

    async def rewrite_listing(
        self,
        title: Optional[str],
        short_description: Optional[str],
        long_description: Optional[str],
    ) -> Optional[Dict[str, str]]:
        ...


@dataclass
class ListingText:
    """Title and descriptions that the rewrite may replace."""
    title: Optional[str]
    short_description: Optional[str]
    long_description: Optional[str]


@dataclass
class RewriteResult:
    """Result of a rewrite on one field."""
    field: str
    original: Optional[str]
    rewritten: Optional[str]
    success: bool
    reason: Optional[str] = None


@dataclass
class RewriteReport:
    """Report of all rewrites applied to a listing."""
    rewritten: bool = False
    attempted: bool = False
    skipped_reason: Optional[str] = None
    results: List[RewriteResult] = field(default_factory=list)

    def add_result(self, result: RewriteResult):
        """Add a field result to the report."""
        self.results.append(result)
        if result.success:
            self.rewritten = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for API response."""
        return {
            "rewritten": self.rewritten,
            "attempted": self.attempted,
            "skipped_reason": self.skipped_reason,
            "results": [
                {
                    "field": r.field,
                    "original": r.original,
                    "rewritten": r.rewritten,
                    "success": r.success,
                    "reason": r.reason,
                }
                for r in self.results
            ],
        }


def quality_issues(listing: ListingText) -> List[str]:
    """Reasons the listing text counts as low quality; empty when it is fine."""
    issues = []
    short = (listing.short_description or "").strip()
    long = (listing.long_description or "").strip()

    if len(short) < MIN_SHORT_DESCRIPTION_LENGTH:
        issues.append("short_description_too_short")
    if len(long) < MIN_LONG_DESCRIPTION_LENGTH:
        issues.append("long_description_too_short")

    combined = f"{short} {long}".lower()
    if any(phrase in combined for phrase in FILLER_PHRASES):
        issues.append("filler_phrase")
    return issues


class TextRewriteLayer:
    """
    Text rewrite layer.

    Principles:
    - Only runs on low-quality text
    - The collaborator is optional; its absence is decided at construction
    - Every call is bounded by a timeout
    - Failures fall back to original values
    """

    # Rewrite key -> listing attribute
    FIELD_MAP = (
        ("title", "title"),
        ("short", "short_description"),
        ("description", "long_description"),
    )

    def __init__(self, rewriter: Optional[TextRewriter] = None, timeout: float = 20.0):
        self.logger = LayerLogger("text_rewrite")
        self.rewriter = rewriter
        self.timeout = timeout
        self.logger.log_action(
            "init",
            "completed",
            rewriter_available=self.is_available()
        )

    def is_available(self) -> bool:
        """Check if a rewrite collaborator is configured."""
        return self.rewriter is not None and self.rewriter.is_available()

    async def improve(
        self,
        listing: ListingText,
        keep_title: bool = False,
    ) -> tuple[ListingText, RewriteReport]:
        """
        Rewrite low-quality listing text.

        Args:
            listing: Scraped (or default) title and descriptions
            keep_title: Do not replace the title (it was supplied manually)

        Returns:
            The listing to store and a report of what changed
        """
        report = RewriteReport()

        issues = quality_issues(listing)
        if not issues:
            report.skipped_reason = "quality_ok"
            self.logger.log_decision(
                decision="skip_rewrite",
                reason="Listing text passes quality checks"
            )
            return listing, report

        if not self.is_available():
            report.skipped_reason = "rewriter_unavailable"
            self.logger.log_decision(
                decision="skip_rewrite",
                reason="No rewrite collaborator configured",
                issues=issues
            )
            return listing, report

        report.attempted = True
        self.logger.log_action("rewrite", "started", issues=issues)

        try:
            rewritten = await asyncio.wait_for(
                self.rewriter.rewrite_listing(
                    listing.title,
                    listing.short_description,
                    listing.long_description,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            report.skipped_reason = "timeout"
            self.logger.log_error(
                f"Rewrite timed out after {self.timeout}s",
                error_type="timeout"
            )
            return listing, report
        except Exception as e:
            # Best-effort collaborator: any failure keeps the scraped text
            report.skipped_reason = "rewrite_error"
            self.logger.log_error(f"Rewrite failed: {str(e)}", error_type="rewrite_error")
            return listing, report

        if not rewritten:
            report.skipped_reason = "rewrite_failed"
            self.logger.log_action("rewrite", "failed", reason="no_usable_output")
            return listing, report

        improved = ListingText(
            title=listing.title,
            short_description=listing.short_description,
            long_description=listing.long_description,
        )
        for key, attr in self.FIELD_MAP:
            original = getattr(listing, attr)
            value = rewritten.get(key)
            if key == "title" and keep_title:
                report.add_result(RewriteResult(attr, original, None, False, "manual_title"))
                continue
            if value:
                setattr(improved, attr, value)
                report.add_result(RewriteResult(attr, original, value, True))
            else:
                report.add_result(RewriteResult(attr, original, None, False, "missing_in_output"))

        self.logger.log_action(
            "rewrite",
            "completed",
            fields=[r.field for r in report.results if r.success]
        )
        return improved, report
