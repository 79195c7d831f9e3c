"""
Link model - the central stored entity of the Affiliate Link Pipeline.
One Link is one product page turned into a trackable affiliate link.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_link_id() -> str:
    return uuid.uuid4().hex[:12]


class StatusReason(str, Enum):
    """Why a link is inactive."""
    UNAVAILABLE_ON_CHECK = "unavailable_on_check"
    MANUALLY_DISABLED = "manually_disabled"


class PriceChangeReason(str, Enum):
    """What wrote the current price over the previous one."""
    MAINTENANCE_REFRESH = "maintenance_refresh"
    MANUAL_EDIT = "manual_edit"


class CreateReason(str, Enum):
    MANUAL_CREATE = "manual_create"
    BULK_CREATE = "bulk_create"


# Fields a human may edit through update-by-id. Editing one marks it curated.
EDITABLE_FIELDS = (
    "title",
    "brand",
    "image_url",
    "images",
    "short_description",
    "long_description",
    "category",
    "subcategory",
    "note",
    "is_active",
    "price",
    "price_currency",
)

# Title stored when neither the page nor the user supplied one
DEFAULT_TITLE = "Product"


class Link(BaseModel):
    """
    Stored affiliate link with scraped merchandising metadata.

    `curated_fields` lists fields a human set explicitly. The reconciliation
    job never writes those, which keeps "absent" and "intentionally cleared"
    apart.
    """
    # Identity
    id: str = Field(default_factory=new_link_id)
    source: str = "amazon"

    # URLs
    canonical_url: str
    raw_url: str
    affiliate_url: str
    tag: Optional[str] = None

    # Merchandising
    title: Optional[str] = None
    short_title: Optional[str] = None
    brand: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    short_description: Optional[str] = None
    long_description: Optional[str] = None
    category_path: List[str] = Field(default_factory=list)
    note: Optional[str] = None

    # Classification
    category: str = "other"
    subcategory: str = "other"

    # Commerce
    price: Optional[float] = None
    price_currency: Optional[str] = None
    price_raw: Optional[str] = None
    previous_price: Optional[float] = None
    previous_price_currency: Optional[str] = None
    price_change_reason: Optional[str] = None

    # Popularity
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    reviews_count: Optional[int] = Field(default=None, ge=0)

    # Lifecycle / ops
    is_active: bool = True
    status_reason: Optional[str] = None
    clicks: int = Field(default=0, ge=0)
    last_clicked_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None
    last_error: Optional[str] = None
    create_reason: Optional[str] = None
    curated_fields: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _inactive_needs_reason(self) -> "Link":
        if not self.is_active and not self.status_reason:
            raise ValueError("inactive link requires a status_reason")
        return self

    def is_curated(self, field_name: str) -> bool:
        return field_name in self.curated_fields


class BulkItemResult(BaseModel):
    """Per-URL outcome of a bulk create."""
    url: str
    ok: bool
    id: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    warning: Optional[str] = None


class BulkCreateResult(BaseModel):
    """Aggregate outcome of a bulk create. Never a total failure."""
    created: List[BulkItemResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[BulkItemResult]:
        return [item for item in self.created if item.ok]

    @property
    def failed(self) -> List[BulkItemResult]:
        return [item for item in self.created if not item.ok]
