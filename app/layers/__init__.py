"""Layers package initialization."""
from app.layers.url_normalizer import URLNormalizer, NormalizedURL, normalize_url
from app.layers.metadata_extractor import MetadataExtractor, ScrapeResult
from app.layers.price_parser import parse_price
from app.layers.category_classifier import classify, resolve_category
from app.layers.affiliate import build_affiliate_url
from app.layers.text_rewrite import TextRewriteLayer
from app.layers.link_manager import LinkLifecycleManager, LinkManagerSettings
from app.layers.reconciliation import ReconciliationJob, ReconciliationReport

__all__ = [
    "URLNormalizer",
    "NormalizedURL",
    "normalize_url",
    "MetadataExtractor",
    "ScrapeResult",
    "parse_price",
    "classify",
    "resolve_category",
    "build_affiliate_url",
    "TextRewriteLayer",
    "LinkLifecycleManager",
    "LinkManagerSettings",
    "ReconciliationJob",
    "ReconciliationReport",
]
