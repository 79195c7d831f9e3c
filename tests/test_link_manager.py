"""
Link lifecycle manager tests
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.layers.link_manager import LinkLifecycleManager, LinkManagerSettings, validate_input_url
from app.layers.metadata_extractor import MetadataExtractor
from app.layers.text_rewrite import DEFAULT_SHORT_DESCRIPTION, TextRewriteLayer
from app.layers.url_normalizer import URLNormalizer
from app.models.errors import (
    BatchTooLarge,
    InvalidCategory,
    InvalidInputURL,
    LinkNotFound,
)
from conftest import (
    OTHER_PRODUCT_URL,
    PRODUCT_URL,
    FakeFetcher,
    _no_sleep,
    bot_page,
    build_product_html,
    network_failure,
    page,
)


def manager_with(fetcher, store, rewrite_layer=None, **settings) -> LinkLifecycleManager:
    return LinkLifecycleManager(
        store=store,
        extractor=MetadataExtractor(fetcher, bot_retry_delay=0, sleep=_no_sleep),
        normalizer=URLNormalizer(fetcher),
        settings=LinkManagerSettings(affiliate_tag="test-21", **settings),
        rewrite_layer=rewrite_layer,
    )


class TestValidateInputURL:

    def test_adds_scheme(self):
        assert validate_input_url("www.amazon.in/dp/B0ABCDEFGH") == "https://www.amazon.in/dp/B0ABCDEFGH"

    @pytest.mark.parametrize("url", ["", "   ", None, "not-a-url", "ftp://example.com/x"])
    def test_rejects(self, url):
        with pytest.raises(InvalidInputURL):
            validate_input_url(url)


class TestCreate:
    """Single link creation"""

    @pytest.mark.asyncio
    async def test_create_from_product_page(self, manager, store):
        link = await manager.create(PRODUCT_URL + "/ref=sr_1_1?keywords=headphones")

        assert link.canonical_url == PRODUCT_URL
        assert link.affiliate_url == PRODUCT_URL + "?tag=test-21"
        assert link.raw_url.endswith("keywords=headphones")
        assert link.title == "boAt Rockerz 450 Bluetooth On Ear Headphones"
        assert link.brand == "boAt"
        assert (link.category, link.subcategory) == ("electronics", "audio")
        assert link.price == pytest.approx(1499.0)
        assert link.price_currency == "INR"
        assert link.rating == pytest.approx(4.1)
        assert link.is_active
        assert link.clicks == 0
        assert link.last_error is None
        assert link.create_reason == "manual_create"
        assert await store.get(link.id) == link

    @pytest.mark.asyncio
    async def test_manual_category_overrides(self, manager):
        link = await manager.create(PRODUCT_URL, manual_category="home_living", manual_subcategory="kitchen")
        assert (link.category, link.subcategory) == ("home_living", "kitchen")

    @pytest.mark.asyncio
    async def test_invalid_manual_category_uses_classifier(self, manager):
        link = await manager.create(PRODUCT_URL, manual_category="gadgets")
        assert (link.category, link.subcategory) == ("electronics", "audio")

    @pytest.mark.asyncio
    async def test_manual_title_without_scrape(self, manager, fetcher):
        link = await manager.create(PRODUCT_URL, manual_title="My pick", auto_title=False, note="gift idea")

        assert fetcher.calls == []
        assert link.title == "My pick"
        assert link.note == "gift idea"
        assert link.short_description == DEFAULT_SHORT_DESCRIPTION
        assert link.price is None

    @pytest.mark.asyncio
    async def test_bot_protection_still_creates(self, store):
        fetcher = FakeFetcher({PRODUCT_URL: bot_page(PRODUCT_URL)})
        link = await manager_with(fetcher, store).create(PRODUCT_URL, manual_title="Fallback title")

        assert link.title == "Fallback title"
        assert link.last_error.startswith("bot_protection")
        assert link.price is None
        assert len(fetcher.calls) == 2

    @pytest.mark.asyncio
    async def test_default_title(self, store):
        link = await manager_with(FakeFetcher(), store).create("https://shop.example.com/item/42")

        assert link.title == "Product"
        assert link.source == "example"
        assert link.canonical_url == "https://shop.example.com/item/42"
        assert link.last_error.startswith("network_error")

    @pytest.mark.asyncio
    async def test_invalid_url(self, manager, store):
        with pytest.raises(InvalidInputURL):
            await manager.create("not-a-url")
        assert await store.list_all() == []

    @pytest.mark.asyncio
    async def test_no_tag_configured(self, fetcher, store):
        manager = manager_with(fetcher, store)
        manager.settings.affiliate_tag = ""
        link = await manager.create(PRODUCT_URL)
        assert link.affiliate_url == PRODUCT_URL
        assert link.tag is None

    @pytest.mark.asyncio
    async def test_manual_title_survives_rewrite(self, store):
        fetcher = FakeFetcher()
        rewriter = MagicMock()
        rewriter.is_available.return_value = True
        rewriter.rewrite_listing = AsyncMock(return_value={
            "title": "Rewritten title",
            "short": "Rewritten short description.",
        })

        manager = manager_with(fetcher, store, rewrite_layer=TextRewriteLayer(rewriter))
        link = await manager.create(PRODUCT_URL, manual_title="Hand written", auto_title=False)

        assert link.title == "Hand written"
        assert link.short_description == "Rewritten short description."


class TestBulkCreate:
    """Batch creation with per-item isolation"""

    @pytest.mark.asyncio
    async def test_one_invalid_url(self, manager, store):
        urls = [PRODUCT_URL, OTHER_PRODUCT_URL, "not-a-url", "https://www.amazon.in/dp/B0CCCCCCCC", "https://www.amazon.in/dp/B0DDDDDDDD"]

        result = await manager.bulk_create(urls, shared_category="electronics", shared_note="batch")

        assert len(result.created) == 5
        assert len(result.succeeded) == 4
        assert len(result.failed) == 1
        failed = result.failed[0]
        assert failed.url == "not-a-url"
        assert failed.error_kind == "invalid_input_url"
        links = await store.list_all()
        assert len(links) == 4
        assert all(l.create_reason == "bulk_create" and l.note == "batch" for l in links)
        assert all(l.category == "electronics" for l in links)

    @pytest.mark.asyncio
    async def test_scrape_failure_is_a_warning(self, manager):
        result = await manager.bulk_create([OTHER_PRODUCT_URL])
        item = result.created[0]
        assert item.ok
        assert item.warning.startswith("network_error")

    @pytest.mark.asyncio
    async def test_network_failure_in_batch(self, store):
        good = [PRODUCT_URL, "https://www.amazon.in/dp/B0CCCCCCCC", "https://www.amazon.in/dp/B0DDDDDDDD", "https://www.amazon.in/dp/B0EEEEEEEE"]
        fetcher = FakeFetcher({url: page(url, build_product_html()) for url in good})
        fetcher.pages[OTHER_PRODUCT_URL] = network_failure(OTHER_PRODUCT_URL)
        urls = good[:2] + [OTHER_PRODUCT_URL] + good[2:]

        result = await manager_with(fetcher, store).bulk_create(urls)

        assert len(result.created) == 5
        assert all(item.ok for item in result.created)
        warnings = [item for item in result.created if item.warning]
        assert len(warnings) == 1
        assert warnings[0].url == OTHER_PRODUCT_URL
        assert warnings[0].warning.startswith("network_error")
        assert len(await store.list_all()) == 5

    @pytest.mark.asyncio
    async def test_too_many(self, manager):
        urls = [f"https://www.amazon.in/dp/B0{i:08d}" for i in range(11)]
        with pytest.raises(BatchTooLarge):
            await manager.bulk_create(urls)

    @pytest.mark.asyncio
    async def test_empty(self, manager):
        with pytest.raises(InvalidInputURL):
            await manager.bulk_create(["", "  "])

    @pytest.mark.asyncio
    async def test_unexpected_error_isolated(self, manager, monkeypatch):
        original = manager.create

        async def flaky(url, **kwargs):
            if url == OTHER_PRODUCT_URL:
                raise RuntimeError("boom")
            return await original(url, **kwargs)

        monkeypatch.setattr(manager, "create", flaky)
        result = await manager.bulk_create([OTHER_PRODUCT_URL, PRODUCT_URL])

        assert [item.ok for item in result.created] == [False, True]
        assert result.created[0].error_kind == "unexpected"


class TestPerLinkOperations:
    """Redirect, update, delete"""

    @pytest.mark.asyncio
    async def test_redirect_counts_click(self, manager, store):
        link = await manager.create(PRODUCT_URL)

        target = await manager.redirect(link.id)
        await manager.redirect(link.id)

        assert target == PRODUCT_URL + "?tag=test-21"
        assert (await store.get(link.id)).clicks == 2

    @pytest.mark.asyncio
    async def test_redirect_missing(self, manager):
        with pytest.raises(LinkNotFound):
            await manager.redirect("missing")

    @pytest.mark.asyncio
    async def test_update_marks_curated(self, manager):
        link = await manager.create(PRODUCT_URL)

        updated = await manager.update(link.id, {"title": "A much better title", "image_url": None, "clicks": 999})

        assert updated.title == "A much better title"
        assert updated.short_title == "A much better title"
        assert updated.slug == "a-much-better-title"
        assert updated.image_url is None
        assert updated.clicks == 0
        assert set(updated.curated_fields) == {"title", "image_url"}

    @pytest.mark.asyncio
    async def test_update_category_strict(self, manager):
        link = await manager.create(PRODUCT_URL)
        with pytest.raises(InvalidCategory):
            await manager.update(link.id, {"category": "gadgets"})

        updated = await manager.update(link.id, {"category": "fashion", "subcategory": "watches"})
        assert (updated.category, updated.subcategory) == ("fashion", "watches")

    @pytest.mark.asyncio
    async def test_disable_and_enable(self, manager):
        link = await manager.create(PRODUCT_URL)

        disabled = await manager.update(link.id, {"is_active": False})
        assert not disabled.is_active
        assert disabled.status_reason == "manually_disabled"

        enabled = await manager.update(link.id, {"is_active": True})
        assert enabled.is_active
        assert enabled.status_reason is None

    @pytest.mark.asyncio
    async def test_null_is_active_ignored(self, manager):
        link = await manager.create(PRODUCT_URL)

        updated = await manager.update(link.id, {"is_active": None, "note": "still live"})

        assert updated.is_active
        assert updated.status_reason is None
        assert updated.note == "still live"
        assert updated.curated_fields == ["note"]

    @pytest.mark.asyncio
    async def test_manual_price_edit(self, manager):
        link = await manager.create(PRODUCT_URL)
        updated = await manager.update(link.id, {"price": 1299.0})

        assert updated.price == pytest.approx(1299.0)
        assert updated.previous_price == pytest.approx(1499.0)
        assert updated.price_change_reason == "manual_edit"

    @pytest.mark.asyncio
    async def test_delete(self, manager, store):
        link = await manager.create(PRODUCT_URL)
        await manager.delete(link.id)

        assert await store.get(link.id) is None
        with pytest.raises(LinkNotFound):
            await manager.delete(link.id)
