"""
Per-domain parsers for a few high-traffic retailers.

This table is a best-effort convenience tuned to each site's current
markup; it will drift as sites change. The generic strategies work with an
empty table, so entries can be swapped or removed freely.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from bs4 import Tag

from sift.extraction.document import PageDocument
from sift.extraction.patterns import MAX_DESCRIPTION_LENGTH, MAX_FEATURES, RATING_NUMBER_RE
from sift.extraction.records import availability, build_record, first_image, is_sponsored, parse_price, text_of
from sift.models import ProductRecord

logger = logging.getLogger(__name__)


def _rating(element: Optional[Tag]) -> Optional[float]:
    if element is None:
        return None
    match = RATING_NUMBER_RE.search(text_of(element) or str(element.get("aria-label") or ""))
    if not match:
        return None
    value = float(match.group(1))
    return value if 0 <= value <= 5 else None


def _count(element: Optional[Tag]) -> Optional[int]:
    digits = re.sub(r"[^0-9]", "", text_of(element))
    return int(digits) if digits else None


def _href(element: Optional[Tag], document: PageDocument) -> str:
    if element is None:
        return ""
    anchor = element if element.name == "a" else (element.find_parent("a") or element.find("a"))
    if anchor is None or not anchor.get("href"):
        return ""
    return document.absolute(anchor.get("href"))


@dataclass(frozen=True)
class DomainParser:
    """Selector set for one retailer: search results first, then its product page."""

    item_selectors: Tuple[str, ...]
    title_selector: str
    price_selector: str
    link_selector: Optional[str] = None
    image_selector: str = "img"
    rating_selector: Optional[str] = None
    review_selector: Optional[str] = None
    stock_selector: Optional[str] = None
    description_selector: Optional[str] = None
    sponsored_selector: Optional[str] = None
    max_items: int = 12

    single_title_selector: Optional[str] = None
    single_price_selectors: Tuple[str, ...] = ()
    single_rating_selector: Optional[str] = None
    single_review_selector: Optional[str] = None
    single_stock_selector: Optional[str] = None
    single_feature_selector: Optional[str] = None
    single_image_selector: Optional[str] = None

    def _items(self, document: PageDocument) -> List[Tag]:
        for selector in self.item_selectors:
            items = document.select(selector)
            if items:
                logger.debug(f"Domain items matched {selector!r}: {len(items)}")
                return items
        return []

    def _item_record(self, item: Tag, document: PageDocument) -> Optional[ProductRecord]:
        title_el = item.select_one(self.title_selector)
        if title_el is None:
            return None
        link_el = item.select_one(self.link_selector) if self.link_selector else None
        image_el = item.select_one(self.image_selector) if self.image_selector else None
        stock_el = item.select_one(self.stock_selector) if self.stock_selector else None
        description_el = item.select_one(self.description_selector) if self.description_selector else None
        return build_record(
            text_of(title_el),
            price=parse_price(text_of(item.select_one(self.price_selector)), require_symbol=False),
            url=_href(link_el or title_el, document) or document.url,
            description=text_of(description_el)[:MAX_DESCRIPTION_LENGTH],
            image_url=first_image(image_el, document.url) if image_el is not None else None,
            rating=_rating(item.select_one(self.rating_selector)) if self.rating_selector else None,
            review_count=_count(item.select_one(self.review_selector)) if self.review_selector else None,
            in_stock=availability(text_of(stock_el)) if stock_el is not None else None,
        )

    def parse_listing(self, document: PageDocument) -> List[ProductRecord]:
        records: List[ProductRecord] = []
        for item in self._items(document)[: self.max_items]:
            if self.sponsored_selector and item.select_one(self.sponsored_selector) is not None:
                continue
            if is_sponsored(item):
                continue
            record = self._item_record(item, document)
            if record is not None:
                records.append(record)
        return records

    def parse_single(self, document: PageDocument) -> Optional[ProductRecord]:
        if not self.single_title_selector:
            return None
        title_el = document.select_one(self.single_title_selector)
        if title_el is None:
            return None

        price = None
        for selector in self.single_price_selectors:
            price = parse_price(text_of(document.select_one(selector)), require_symbol=False)
            if price is not None:
                break

        features: List[str] = []
        if self.single_feature_selector:
            features = [t for t in (text_of(li) for li in document.select(self.single_feature_selector)) if 5 < len(t) < 200]
        stock_el = document.select_one(self.single_stock_selector) if self.single_stock_selector else None
        image_el = document.select_one(self.single_image_selector) if self.single_image_selector else None

        return build_record(
            text_of(title_el),
            price=price,
            url=document.url,
            description=" | ".join(features[:5])[:MAX_DESCRIPTION_LENGTH],
            image_url=first_image(image_el, document.url) if image_el is not None else None,
            rating=_rating(document.select_one(self.single_rating_selector)) if self.single_rating_selector else None,
            review_count=_count(document.select_one(self.single_review_selector)) if self.single_review_selector else None,
            in_stock=availability(text_of(stock_el)) if stock_el is not None else None,
            features=features[:MAX_FEATURES],
        )


AMAZON = DomainParser(
    item_selectors=(
        '[data-component-type="s-search-result"]',
        '[data-asin]:not([data-asin=""])',
        ".s-result-item[data-asin]",
    ),
    title_selector="h2 a span, h2 span, .a-text-normal",
    price_selector=".a-price .a-offscreen",
    link_selector='h2 a, a[href*="/dp/"]',
    image_selector="img.s-image",
    rating_selector=".a-icon-star-small .a-icon-alt, .a-icon-star .a-icon-alt, [data-cy=reviews-ratings-slot] .a-icon-alt",
    review_selector='.a-size-small .a-link-normal[href*="customerReviews"], [data-cy=reviews-ratings-slot] .a-size-base',
    stock_selector=".a-color-price, .a-color-secondary",
    description_selector=".a-size-base-plus",
    sponsored_selector=".s-label-popover-default",
    max_items=12,
    single_title_selector="#productTitle, #title span",
    single_price_selectors=(
        ".a-price .a-offscreen",
        "#priceblock_ourprice",
        ".priceToPay .a-offscreen",
        "#corePrice_feature_div .a-offscreen",
    ),
    single_rating_selector="#acrPopover .a-icon-alt, .reviewCountTextLinkedHistogram .a-icon-alt",
    single_review_selector='#acrCustomerReviewText, #reviewsMedley [data-hook="total-review-count"]',
    single_stock_selector="#availability span, #outOfStock",
    single_feature_selector="#feature-bullets li span.a-list-item",
    single_image_selector="#landingImage, #imgBlkFront",
)

BEST_BUY = DomainParser(
    item_selectors=(".sku-item", "[data-sku-id]"),
    title_selector=".sku-title a, h4.sku-header a",
    price_selector='[data-testid="customer-price"] span',
    rating_selector=".c-ratings-reviews .visually-hidden",
    review_selector=".c-reviews",
    max_items=10,
    single_title_selector=".sku-title h1, h1.heading-5",
    single_price_selectors=('[data-testid="customer-price"] span', ".priceView-customer-price span"),
)

TARGET = DomainParser(
    item_selectors=('[data-test="@web/ProductCard"]', '[data-test="product-grid"] > div'),
    title_selector='[data-test="product-title"] a, a[data-test="product-title"]',
    price_selector='[data-test="current-price"] span',
    rating_selector='[data-test="ratings"] span',
    max_items=10,
    single_title_selector='h1[data-test="product-title"]',
    single_price_selectors=('[data-test="product-price"]',),
)

WALMART = DomainParser(
    item_selectors=("[data-item-id]", ".search-result-gridview-item"),
    title_selector='[data-automation-id="product-title"], .product-title-link',
    price_selector='[data-automation-id="product-price"] .f2, .price-main .visuallyhidden',
    link_selector="a[href]",
    max_items=10,
    single_title_selector='h1[itemprop="name"], h1#main-title',
    single_price_selectors=('[itemprop="price"]', '[data-testid="price-wrap"] span'),
)

HOME_DEPOT = DomainParser(
    item_selectors=('[data-testid="product-pod"]', ".browse-search__pod", ".product-pod"),
    title_selector='[data-testid="product-header"] a, .product-title, a.product-header__title',
    price_selector='[data-testid="price-format"] span, .price-format__main-price, .price__dollars',
    rating_selector=".ratings__average",
    review_selector=".ratings__count",
    max_items=10,
    single_title_selector="h1.product-details__title, h1.sui-h4-bold",
    single_price_selectors=(".price-format__main-price", ".price__dollars"),
)

DEFAULT_DOMAIN_PARSERS: Mapping[str, DomainParser] = {
    "amazon.com": AMAZON,
    "bestbuy.com": BEST_BUY,
    "target.com": TARGET,
    "walmart.com": WALMART,
    "homedepot.com": HOME_DEPOT,
}


def parser_for(hostname: str, parsers: Mapping[str, DomainParser]) -> Optional[DomainParser]:
    """Parser registered for ``hostname`` or any parent domain of it."""
    host = (hostname or "").lower()
    for domain, parser in parsers.items():
        if host == domain or host.endswith("." + domain):
            return parser
    return None
