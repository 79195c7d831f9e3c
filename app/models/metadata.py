"""
Extraction records produced by the metadata extractor and price parser.
Every field is optional: a cascade that finds nothing leaves it empty.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class ParsedPrice(BaseModel):
    """Normalized price. `raw` keeps the scraped text for audit."""
    amount: Optional[float] = None
    currency: Optional[str] = None
    raw: Optional[str] = None


class ProductMetadata(BaseModel):
    """Merchandising metadata scraped from one product page."""
    title: Optional[str] = None
    short_title: Optional[str] = None
    brand: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    price_raw: Optional[str] = None
    rating: Optional[float] = None
    reviews_count: Optional[int] = None
    bullets: List[str] = Field(default_factory=list)
    short_description: Optional[str] = None
    long_description: Optional[str] = None
    category_path: List[str] = Field(default_factory=list)
    unavailable: bool = False

    def get_present_fields(self) -> List[str]:
        """Return list of non-empty fields."""
        present = []
        for name, value in self.model_dump(exclude={"unavailable"}).items():
            if value not in (None, "", []):
                present.append(name)
        return present

    def get_missing_fields(self) -> List[str]:
        """Return list of empty fields."""
        present = set(self.get_present_fields())
        return [
            name for name in self.model_dump(exclude={"unavailable"})
            if name not in present
        ]
