"""
Affiliate Link Pipeline - FastAPI Application
Main entry point with REST API endpoints.
"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from app.config import config
from app.utils.logger import get_logger, set_trace_id
from app.adapters.claude_client import ClaudeClient
from app.adapters.link_store import InMemoryLinkStore, JsonFileLinkStore
from app.adapters.page_fetcher import PageFetcher
from app.layers.link_manager import LinkLifecycleManager, LinkManagerSettings
from app.layers.metadata_extractor import MetadataExtractor
from app.layers.reconciliation import ReconciliationJob
from app.layers.text_rewrite import TextRewriteLayer
from app.layers.url_normalizer import URLNormalizer
from app.models.errors import ErrorKind, PipelineError
from app.models.link import Link
from app.models.taxonomy import list_categories, list_subcategories


logger = get_logger("main")


def build_link_store():
    if config.LINKS_DATA_FILE:
        return JsonFileLinkStore(Path(config.LINKS_DATA_FILE))
    return InMemoryLinkStore()


# Initialize layers
page_fetcher = PageFetcher(timeout=config.REQUEST_TIMEOUT, max_redirects=config.MAX_REDIRECTS)
metadata_extractor = MetadataExtractor(page_fetcher, bot_retry_delay=config.BOT_RETRY_DELAY)
url_normalizer = URLNormalizer(page_fetcher, config.SHORT_LINK_HOSTS)
link_store = build_link_store()
text_rewrite_layer = TextRewriteLayer(
    ClaudeClient(config.CLAUDE_API_KEY, config.CLAUDE_MODEL, config.REWRITE_TIMEOUT)
    if config.is_rewrite_configured() else None,
    timeout=config.REWRITE_TIMEOUT,
)
link_manager = LinkLifecycleManager(
    store=link_store,
    extractor=metadata_extractor,
    normalizer=url_normalizer,
    settings=LinkManagerSettings(
        affiliate_tag=config.AFFILIATE_TAG,
        tag_param=config.AFFILIATE_TAG_PARAM,
        max_bulk_urls=config.MAX_BULK_URLS,
    ),
    rewrite_layer=text_rewrite_layer,
)
reconciliation_job = ReconciliationJob(link_store, metadata_extractor)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if isinstance(link_store, JsonFileLinkStore):
        await link_store.load()
    if not config.is_rewrite_configured():
        logger.info("text_rewrite_disabled", missing=config.get_missing_rewrite_vars())
    yield


# Initialize FastAPI app
app = FastAPI(
    title="Affiliate Link Pipeline",
    description="Turns product URLs into tracked affiliate links with scraped metadata",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error kind -> HTTP status
STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT_URL: 400,
    ErrorKind.BATCH_TOO_LARGE: 400,
    ErrorKind.INVALID_CATEGORY: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PERSISTENCE_ERROR: 500,
}


def to_http_error(error: PipelineError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_KIND.get(error.kind, 502),
        detail={"kind": error.kind.value, "message": error.message},
    )


# Request/Response models
class CreateLinkRequest(BaseModel):
    """Request model for single link creation."""
    url: str
    title: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    note: Optional[str] = None
    auto_title: bool = True


class BulkCreateRequest(BaseModel):
    """Request model for bulk link creation."""
    urls: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    subcategory: Optional[str] = None
    note: Optional[str] = None
    auto_title: bool = True


class UpdateLinkRequest(BaseModel):
    """Manual edits. Only fields present in the body are applied."""
    title: Optional[str] = None
    brand: Optional[str] = None
    image_url: Optional[str] = None
    images: Optional[List[str]] = None
    short_description: Optional[str] = None
    long_description: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    note: Optional[str] = None
    is_active: Optional[bool] = None
    price: Optional[float] = Field(default=None, ge=0)
    price_currency: Optional[str] = None


class LinkResponse(BaseModel):
    success: bool = True
    link: Link
    trace_id: str


# API Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/api/taxonomy")
async def get_taxonomy():
    """List categories with their subcategories."""
    return {
        "categories": [
            {**category, "subcategories": list_subcategories(category["key"])}
            for category in list_categories()
        ]
    }


@app.get("/api/links/all")
async def get_all_links():
    """All links, newest first."""
    links = await link_manager.list_links()
    return {"success": True, "links": links}


@app.post("/api/links/create")
async def create_link(request: CreateLinkRequest):
    """Create one affiliate link from a product URL."""
    trace_id = set_trace_id()

    logger.info(
        "create_link_request",
        url=request.url,
        auto_title=request.auto_title,
        category=request.category,
        trace_id=trace_id
    )

    try:
        link = await link_manager.create(
            request.url,
            manual_title=request.title,
            manual_category=request.category,
            manual_subcategory=request.subcategory,
            note=request.note,
            auto_title=request.auto_title,
        )
    except PipelineError as e:
        logger.error("create_link_error", error=e.describe(), url=request.url)
        raise to_http_error(e)

    return LinkResponse(link=link, trace_id=trace_id)


@app.post("/api/links/create-multiple")
async def create_multiple_links(request: BulkCreateRequest):
    """Create links for up to MAX_BULK_URLS product URLs."""
    trace_id = set_trace_id()

    logger.info("bulk_create_request", count=len(request.urls), trace_id=trace_id)

    try:
        result = await link_manager.bulk_create(
            request.urls,
            shared_category=request.category,
            shared_subcategory=request.subcategory,
            shared_note=request.note,
            auto_title=request.auto_title,
        )
    except PipelineError as e:
        logger.error("bulk_create_error", error=e.describe())
        raise to_http_error(e)

    return {"success": True, "created": result.created, "trace_id": trace_id}


@app.get("/api/links/go/{link_id}")
async def redirect_link(link_id: str):
    """Count the click and redirect to the affiliate URL."""
    try:
        target = await link_manager.redirect(link_id)
    except PipelineError as e:
        raise to_http_error(e)
    return RedirectResponse(url=target, status_code=302)


@app.patch("/api/links/{link_id}")
async def update_link(link_id: str, request: UpdateLinkRequest):
    """Apply manual edits to a link."""
    trace_id = set_trace_id()
    try:
        link = await link_manager.update(link_id, request.model_dump(exclude_unset=True))
    except PipelineError as e:
        logger.error("update_link_error", error=e.describe(), link_id=link_id)
        raise to_http_error(e)
    return LinkResponse(link=link, trace_id=trace_id)


@app.delete("/api/links/{link_id}")
async def delete_link(link_id: str):
    """Delete a link."""
    try:
        await link_manager.delete(link_id)
    except PipelineError as e:
        raise to_http_error(e)
    return {"success": True}


@app.post("/api/links/maintenance/daily")
async def run_daily_maintenance():
    """Run the reconciliation job over stored links."""
    trace_id = set_trace_id()
    logger.info("maintenance_request", trace_id=trace_id)

    report = await reconciliation_job.run_daily()
    return {
        "success": True,
        "processed": report.processed,
        "updated": report.updated,
        "failed": report.failed,
        "deactivated": report.deactivated,
        "reactivated": report.reactivated,
        "price_changes": report.price_changes,
        "items": report.items,
        "trace_id": trace_id,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
