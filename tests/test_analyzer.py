"""Tests for page analysis orchestration."""

import pytest

from conftest import make_context

from sift.analyzer import NO_PRODUCTS_MESSAGE, PageAnalyzer
from sift.channel import RELOAD_MESSAGE
from sift.dependencies import build_services
from sift.extraction import PageDocument

STORE_URL = "https://shop.example.com/espresso"
NAMES = ("Alpha", "Bravo", "Charlie", "Delta", "Echo", "Foxtrot", "Golf")


def listing_page(count: int = len(NAMES)) -> PageDocument:
    cards = "".join(
        f'<div class="product-card"><h3><a href="/p/{name.lower()}">{name} Espresso Maker</a></h3>'
        f'<span class="price">${300 + i}.00</span></div>'
        for i, name in enumerate(NAMES[:count])
    )
    html = f"<html><head><title>Espresso Machines</title></head><body>{cards}</body></html>"
    return PageDocument(html, STORE_URL)


@pytest.fixture
def analyzer(channel):
    return PageAnalyzer(channel, settle_delay=0, wait_budget=0.2, poll_interval=0.05)


@pytest.fixture
def matched_site(history, scoring):
    history.upsert(make_context(conversation_id="conv-1"))
    scoring.site_response = {"isShoppingSite": True, "matchedResearchId": "conv-1", "matchScore": 80}


@pytest.mark.asyncio
async def test_empty_history_skips(analyzer, scoring):
    result = await analyzer.analyze(listing_page())

    assert result.status == "skipped"
    assert scoring.calls == []


@pytest.mark.asyncio
async def test_unrelated_site(analyzer, history, scoring):
    history.upsert(make_context(conversation_id="conv-1"))
    scoring.site_response = {"isShoppingSite": True, "matchedResearchId": "conv-1", "matchScore": 20}

    result = await analyzer.analyze(listing_page())

    assert result.status == "no_match"
    assert scoring.paths() == ["/api/analyze-site"]


@pytest.mark.asyncio
async def test_ranked_products_filtered_and_capped(analyzer, scoring, matched_site):
    """Only products scoring above 50 are shown, best first, at most five."""
    scores = [60, 91, 30, 75, 80, 50, 99]
    scoring.rank_response = {
        "rankings": [{"index": i, "score": s, "reasons": [f"reason {i}"]} for i, s in enumerate(scores)],
        "summary": "Golf is the best match",
    }

    result = await analyzer.analyze(listing_page())

    assert result.status == "ranked"
    assert result.strategy == "card_pattern"
    assert result.summary == "Golf is the best match"
    assert [p.score for p in result.products] == [99, 91, 80, 75, 60]
    assert result.products[0].title == "Golf Espresso Maker"
    assert result.products[0].price == 306.0
    assert result.products[0].reasons == ["reason 6"]

    _, body = scoring.calls[-1]
    assert len(body["products"]) == 7
    assert body["context"]["query"] == "best espresso machine under $500"
    assert not analyzer.is_analyzing


@pytest.mark.asyncio
async def test_no_products_on_matched_site(analyzer, matched_site, scoring):
    page = PageDocument("<html><body><h1>Our Story</h1><p>Family owned.</p></body></html>", STORE_URL)

    result = await analyzer.analyze(page)

    assert result.status == "no_products"
    assert result.error == NO_PRODUCTS_MESSAGE
    assert scoring.paths() == ["/api/analyze-site"]


@pytest.mark.asyncio
async def test_ranking_error_reported(analyzer, matched_site, scoring):
    scoring.rank_response = {"summary": "missing rankings"}

    result = await analyzer.analyze(listing_page())

    assert result.status == "error"
    assert result.error == "Failed to analyze products. Please try again."


@pytest.mark.asyncio
async def test_busy_latch_drops_request(analyzer, scoring):
    analyzer.is_analyzing = True

    result = await analyzer.analyze(listing_page())

    assert result.status == "busy"
    assert scoring.calls == []


@pytest.mark.asyncio
async def test_halts_after_invalidation(analyzer, channel, scoring):
    channel.invalidate()

    first = await analyzer.analyze(listing_page())
    second = await analyzer.analyze(listing_page())

    assert first.status == second.status == "halted"
    assert first.error == RELOAD_MESSAGE
    assert analyzer.halted
    assert not analyzer.is_analyzing
    assert scoring.calls == []


@pytest.mark.asyncio
async def test_services_build_configured_analyzer(settings, scoring):
    settings = settings.model_copy(
        update={"extraction_settle_delay": 0, "extraction_wait_budget": 0.2, "max_shown_products": 2}
    )
    services = build_services(settings, transport=scoring.transport)
    services.history.upsert(make_context(conversation_id="conv-1"))
    scoring.site_response = {"isShoppingSite": True, "matchedResearchId": "conv-1", "matchScore": 80}
    scoring.rank_response = {"rankings": [{"index": i, "score": 60 + i} for i in range(7)]}

    result = await services.page_analyzer().analyze(listing_page())

    assert result.status == "ranked"
    assert [p.title for p in result.products] == ["Golf Espresso Maker", "Foxtrot Espresso Maker"]
