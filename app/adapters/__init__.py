"""Adapters package initialization."""
from app.adapters.page_fetcher import PageFetcher, FetchOutcome, FetchResult
from app.adapters.link_store import LinkStore, InMemoryLinkStore, JsonFileLinkStore
from app.adapters.claude_client import ClaudeClient

__all__ = [
    "PageFetcher",
    "FetchOutcome",
    "FetchResult",
    "LinkStore",
    "InMemoryLinkStore",
    "JsonFileLinkStore",
    "ClaudeClient",
]
