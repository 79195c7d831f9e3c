"""
Page fetcher tests over httpx.MockTransport
"""
import httpx
import pytest

from app.adapters.page_fetcher import FetchOutcome, PageFetcher, is_bot_page
from app.models.errors import ErrorKind
from conftest import BOT_PAGE, PRODUCT_URL


def fetcher_for(handler) -> PageFetcher:
    return PageFetcher(timeout=5, transport=httpx.MockTransport(handler))


class TestFetch:
    """Response classification"""

    @pytest.mark.asyncio
    async def test_success(self, product_html):
        html = product_html()
        fetcher = fetcher_for(lambda request: httpx.Response(200, text=html))

        result = await fetcher.fetch(PRODUCT_URL)

        assert result.outcome == FetchOutcome.SUCCESS
        assert result.ok
        assert result.status_code == 200
        assert "productTitle" in result.html
        assert result.to_error() is None

    @pytest.mark.asyncio
    async def test_bot_page_detected_before_status(self):
        fetcher = fetcher_for(lambda request: httpx.Response(503, text=BOT_PAGE))

        result = await fetcher.fetch(PRODUCT_URL)

        assert result.outcome == FetchOutcome.BOT_PROTECTION
        assert result.to_error().kind == ErrorKind.BOT_PROTECTION

    @pytest.mark.asyncio
    async def test_bot_page_with_200(self):
        fetcher = fetcher_for(lambda request: httpx.Response(200, text=BOT_PAGE))
        assert (await fetcher.fetch(PRODUCT_URL)).outcome == FetchOutcome.BOT_PROTECTION

    @pytest.mark.asyncio
    async def test_http_error(self):
        fetcher = fetcher_for(lambda request: httpx.Response(404, text="<html>Not found</html>"))

        result = await fetcher.fetch(PRODUCT_URL)

        assert result.outcome == FetchOutcome.HTTP_ERROR
        error = result.to_error()
        assert error.kind == ErrorKind.HTTP_ERROR
        assert error.status_code == 404

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await fetcher_for(handler).fetch(PRODUCT_URL)

        assert result.outcome == FetchOutcome.NETWORK_ERROR
        assert result.status_code is None
        assert "ConnectError" in result.error
        assert result.to_error().kind == ErrorKind.NETWORK_ERROR

    @pytest.mark.asyncio
    async def test_sends_browser_headers(self):
        seen = {}

        def handler(request):
            seen["user-agent"] = request.headers["user-agent"]
            seen["accept"] = request.headers["accept"]
            return httpx.Response(200, text="<html></html>")

        await fetcher_for(handler).fetch(PRODUCT_URL)

        assert seen["user-agent"].startswith("Mozilla/5.0")
        assert "text/html" in seen["accept"]


class TestResolveRedirect:
    """Short-link following"""

    @pytest.mark.asyncio
    async def test_follows_chain(self):
        def handler(request):
            if request.url.host == "amzn.to":
                return httpx.Response(301, headers={"Location": "https://www.amazon.in/Thing/dp/B0ABCDEFGH"})
            return httpx.Response(200, text="<html></html>")

        final_url = await fetcher_for(handler).resolve_redirect("https://amzn.to/3abcd")
        assert final_url == "https://www.amazon.in/Thing/dp/B0ABCDEFGH"

    @pytest.mark.asyncio
    async def test_failure_returns_none(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        assert await fetcher_for(handler).resolve_redirect("https://amzn.to/3abcd") is None


def test_is_bot_page():
    assert is_bot_page(BOT_PAGE)
    assert not is_bot_page("<html><span id='productTitle'>x</span></html>")
