"""Tests for the product extraction engine and its generic strategies."""

import asyncio

import pytest

from conftest import FakeClock

from sift.extraction import PageDocument, ProductExtractionEngine
from sift.extraction.engine import filter_in_stock
from sift.extraction.records import build_record, is_sponsored, parse_price
from sift.extraction.single import SingleProductDetector
from sift.models import ProductRecord

LISTING_URL = "https://shop.example.com/espresso"

ABOUT_PAGE = """
<html><head><title>About Us</title></head>
<body><h1>About Us</h1><p>We are a family business roasting coffee since 1990.</p>
<a href="/contact">Contact</a></body></html>
"""

PRODUCT_PAGE = """
<html><head><title>Alpha Espresso Maker</title>
<meta name="description" content="A compact espresso maker for small kitchens."></head>
<body>
<h1 class="product-title">Alpha Espresso Maker</h1>
<span itemprop="price" content="349.00">$349.00</span>
<div id="availability">In Stock</div>
<ul class="feature-list"><li>15 bar pump pressure</li><li>Built-in steam wand</li></ul>
<section class="related">
  <div class="product-card"><h3><a href="/products/bravo">Bravo Espresso Maker</a></h3><span>$219.00</span></div>
  <div class="product-card"><h3><a href="/products/charlie">Charlie Espresso Maker</a></h3><span>$229.00</span></div>
</section>
</body></html>
"""

NAMES = ("Alpha", "Bravo", "Charlie", "Delta", "Echo")


def card(name: str, price: str, extra: str = "") -> str:
    slug = name.lower().replace(" ", "-")
    return (
        f'<div class="product-card"><a href="/p/{slug}"><img src="/img/{slug}.jpg" alt="{name}"></a>'
        f'<h3><a href="/p/{slug}">{name}</a></h3><span class="price">${price}</span>'
        f'<span class="rating">4.5 out of 5</span>{extra}</div>'
    )


def listing(*cards: str) -> str:
    return (
        "<html><head><title>Espresso Machines</title></head><body><h1>Espresso Machines</h1>"
        f'<div class="results">{"".join(cards)}</div></body></html>'
    )


def five_cards() -> str:
    return listing(*(card(f"{name} Espresso Maker", f"{199 + i * 10}.99") for i, name in enumerate(NAMES)))


def test_parse_price():
    assert parse_price("$1,299.99") == 1299.99
    assert parse_price("Now only £45") == 45.0
    assert parse_price("1299") is None
    assert parse_price("1,299", require_symbol=False) == 1299.0
    assert parse_price("") is None


def test_build_record_rejects_short_titles():
    assert build_record("TV", price=10.0) is None
    assert build_record("Alpha Espresso Maker $199.99").title == "Alpha Espresso Maker"
    assert build_record("Alpha Espresso Maker", rating=9) is None


def test_page_document_properties():
    document = PageDocument(PRODUCT_PAGE, "https://www.shop.example.com/products/alpha?ref=1")
    assert document.hostname == "shop.example.com"
    assert document.path == "/products/alpha"
    assert document.title == "Alpha Espresso Maker"
    assert document.description == "A compact espresso maker for small kitchens."
    assert document.absolute("/img/a.jpg") == "https://www.shop.example.com/img/a.jpg"
    assert document.absolute(None) == ""


def test_listing_yields_every_card():
    """Five sibling cards with title and price produce five records."""
    engine = ProductExtractionEngine(PageDocument(five_cards(), LISTING_URL))

    records = engine.extract()

    assert len(records) == 5
    assert engine.last_strategy == "card_pattern"
    first = records[0]
    assert first.title == "Alpha Espresso Maker"
    assert first.price == 199.99
    assert first.url == "https://shop.example.com/p/alpha-espresso-maker"
    assert first.image_url == "https://shop.example.com/img/alpha-espresso-maker.jpg"
    assert first.rating == 4.5
    assert all(r.price is not None for r in records)


def test_single_product_page():
    """A detail page yields exactly its one product, ignoring related items."""
    engine = ProductExtractionEngine(PageDocument(PRODUCT_PAGE, "https://shop.example.com/products/alpha-espresso"))

    records = engine.extract()

    assert len(records) == 1
    assert engine.last_strategy == "single"
    record = records[0]
    assert record.title == "Alpha Espresso Maker"
    assert record.price == 349.0
    assert record.in_stock is True
    assert record.features == ["15 bar pump pressure", "Built-in steam wand"]
    assert record.description == "A compact espresso maker for small kitchens."


def test_product_heading_above_small_listing():
    """A category heading with a product class does not hide the cards below it."""
    html = (
        '<html><body><h1 class="product-listing-title">Camping Tents</h1><div class="results">'
        + card("Trailhead Two Person Tent", "199.00")
        + card("Summit Ultralight Tent", "249.00")
        + card("Basecamp Family Tent", "329.00")
        + "</div></body></html>"
    )
    engine = ProductExtractionEngine(PageDocument(html, "https://shop.example.com/tents"))

    records = engine.extract()

    assert [r.title for r in records] == [
        "Trailhead Two Person Tent",
        "Summit Ultralight Tent",
        "Basecamp Family Tent",
    ]
    assert engine.last_strategy != "single"


def test_single_product_image_from_open_graph():
    html = PRODUCT_PAGE.replace(
        "</head>", '<meta property="og:image" content="/media/alpha-large.jpg"></head>'
    )
    records = ProductExtractionEngine(PageDocument(html, "https://shop.example.com/products/alpha-espresso")).extract()

    assert records[0].image_url == "https://shop.example.com/media/alpha-large.jpg"


def test_non_product_page_yields_nothing():
    engine = ProductExtractionEngine(PageDocument(ABOUT_PAGE, "https://shop.example.com/about"))
    assert engine.extract() == []
    assert engine.last_strategy is None


def test_sponsored_cards_are_excluded():
    html = listing(
        card("Alpha Espresso Maker", "199.99"),
        card("Bravo Espresso Maker", "209.99"),
        card("Promoted Espresso Maker", "99.99", "<span>Sponsored</span>"),
        card("Charlie Espresso Maker", "219.99"),
    )
    records = ProductExtractionEngine(PageDocument(html, LISTING_URL)).extract()

    titles = [r.title for r in records]
    assert titles == ["Alpha Espresso Maker", "Bravo Espresso Maker", "Charlie Espresso Maker"]


def test_is_sponsored_markers():
    document = PageDocument(
        '<div id="a" data-sponsored="1">x</div>'
        '<div id="b"><a href="https://www.amazon.com/sspa/click?x=1">Deal</a></div>'
        '<div id="c"><span>Ad</span></div>'
        '<div id="d"><span>Adapter</span></div>',
        LISTING_URL,
    )
    assert is_sponsored(document.select_one("#a"))
    assert is_sponsored(document.select_one("#b"))
    assert is_sponsored(document.select_one("#c"))
    assert not is_sponsored(document.select_one("#d"))


def test_out_of_stock_products_filtered():
    html = listing(
        card("Alpha Espresso Maker", "199.99"),
        card("Bravo Espresso Maker", "209.99", "<span>Out of stock</span>"),
        card("Charlie Espresso Maker", "219.99", "<button>Add to cart</button>"),
    )
    records = ProductExtractionEngine(PageDocument(html, LISTING_URL)).extract()

    assert [r.title for r in records] == ["Alpha Espresso Maker", "Charlie Espresso Maker"]
    assert records[1].in_stock is True


def test_stock_filter_keeps_everything_when_all_unavailable():
    records = [
        ProductRecord(title="Alpha Espresso Maker", in_stock=False),
        ProductRecord(title="Bravo Espresso Maker", in_stock=False),
    ]
    assert filter_in_stock(records) == records


def test_lone_card_kept_as_partial_result():
    """A single record from a generic stage beats reporting nothing."""
    html = (
        '<html><body><div class="product-card"><h3><a href="/p/alpha">Alpha Espresso Maker</a></h3>'
        '<span class="price">$199.99</span></div></body></html>'
    )
    engine = ProductExtractionEngine(PageDocument(html, LISTING_URL))

    records = engine.extract()
    assert [r.title for r in records] == ["Alpha Espresso Maker"]
    assert engine.last_strategy == "card_pattern"


def test_single_detector_fallback_requires_price():
    detector = SingleProductDetector()
    with_price = PageDocument("<html><body><h1>Gaggia Classic Pro</h1><p>Only $449</p></body></html>", LISTING_URL)
    without_price = PageDocument(ABOUT_PAGE, LISTING_URL)

    assert detector.detect(with_price) is None
    record = detector.detect(with_price, allow_fallbacks=True)
    assert record.title == "Gaggia Classic Pro"
    assert record.price == 449.0
    assert detector.detect(without_price, allow_fallbacks=True) is None


def test_results_cached_until_ttl_or_mutation():
    clock = FakeClock(now=0.0)
    engine = ProductExtractionEngine(PageDocument(five_cards(), LISTING_URL), clock=clock)

    first = engine.extract()
    clock.advance(1.0)
    assert engine.extract() is first

    clock.advance(1.5)
    second = engine.extract()
    assert second is not first
    assert second == first

    engine.notify_mutation(PageDocument(ABOUT_PAGE, "https://shop.example.com/about"))
    assert engine.extract() == []


def test_engine_without_document():
    assert ProductExtractionEngine().extract() == []


@pytest.mark.asyncio
async def test_wait_returns_immediately_when_products_present():
    engine = ProductExtractionEngine(PageDocument(five_cards(), LISTING_URL))
    outcome = await engine.wait_for_products(settle_delay=0, budget=1.0, poll_interval=0.1)

    assert outcome.found
    assert len(outcome.records) == 5
    assert outcome.strategy == "card_pattern"


@pytest.mark.asyncio
async def test_wait_wakes_on_mutation():
    """Products rendered after the first scrape are picked up on the next mutation."""
    engine = ProductExtractionEngine(PageDocument(ABOUT_PAGE, LISTING_URL))
    task = asyncio.create_task(engine.wait_for_products(settle_delay=0, budget=3.0, poll_interval=2.0))

    await asyncio.sleep(0.05)
    engine.notify_mutation(PageDocument(five_cards(), LISTING_URL))
    outcome = await task

    assert outcome.found
    assert outcome.strategy == "card_pattern"
    assert outcome.waited < 2.0


@pytest.mark.asyncio
async def test_wait_gives_up_after_budget():
    engine = ProductExtractionEngine(PageDocument(ABOUT_PAGE, "https://shop.example.com/about"))
    outcome = await engine.wait_for_products(settle_delay=0, budget=0.1, poll_interval=0.03)

    assert not outcome.found
    assert outcome.strategy is None
    assert outcome.waited >= 0.1
