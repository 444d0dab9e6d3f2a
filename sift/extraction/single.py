"""Detector for pages that show exactly one purchasable item."""

import logging
from typing import List, Optional

from bs4 import Tag

from sift.extraction.document import PageDocument
from sift.extraction.patterns import (
    CURRENCY_RE,
    DETAIL_PATH_RES,
    MAX_DESCRIPTION_LENGTH,
    MAX_FEATURES,
    MIN_TITLE_LENGTH,
    PRICE_ONLY_RE,
    SINGLE_DESCRIPTION_SELECTORS,
    SINGLE_FEATURE_SELECTORS,
    SINGLE_IMAGE_SELECTORS,
    SINGLE_PRICE_SELECTORS,
    SINGLE_TITLE_SELECTORS,
)
from sift.extraction.records import (
    availability,
    build_record,
    clean_title,
    extract_rating,
    extract_review_count,
    first_image,
    parse_price,
    text_of,
)
from sift.models import ProductRecord

logger = logging.getLogger(__name__)

AVAILABILITY_SELECTORS = (
    "[itemprop=availability]",
    "#availability",
    "[class*=availability]",
    "[data-test*=availability]",
    "[class*=stock-status]",
)

# A listing page without a detail-style URL usually shows many standalone prices.
MAX_PRICES_WITHOUT_DETAIL_URL = 3


class SingleProductDetector:
    """
    Finds the one product on a detail page, or nothing.

    Strict mode only trusts a detail-style URL or a title selector that
    matches exactly one element on the page. With ``allow_fallbacks`` it
    will settle for the first ``<h1>`` and the first price in the body, but
    only when a price is actually found.
    """

    def has_detail_url(self, document: PageDocument) -> bool:
        return any(pattern.search(document.path) for pattern in DETAIL_PATH_RES)

    def _unique(self, document: PageDocument, selector: str) -> Optional[Tag]:
        matches = document.select(selector)
        if selector.startswith("#"):
            return matches[0] if matches else None
        return matches[0] if len(matches) == 1 else None

    def _find_title(self, document: PageDocument, detail_url: bool) -> Optional[str]:
        for selector in SINGLE_TITLE_SELECTORS:
            element = self._unique(document, selector)
            title = clean_title(text_of(element))
            if len(title) >= MIN_TITLE_LENGTH:
                return title
        if detail_url:
            headings = document.select("h1")
            if len(headings) == 1:
                title = clean_title(text_of(headings[0]))
                if len(title) >= MIN_TITLE_LENGTH:
                    return title
        return None

    def _find_price(self, document: PageDocument) -> Optional[float]:
        for selector in SINGLE_PRICE_SELECTORS:
            for element in document.select(selector, limit=3):
                content = element.get("content")
                if isinstance(content, str) and content.strip():
                    price = parse_price(content, require_symbol=False)
                else:
                    price = parse_price(text_of(element))
                if price is not None:
                    return price
        return None

    def _count_prices(self, document: PageDocument) -> int:
        count = 0
        for string in document.body.find_all(string=CURRENCY_RE):
            if PRICE_ONLY_RE.match(str(string)) or PRICE_ONLY_RE.match(text_of(string.parent)):
                count += 1
                if count > MAX_PRICES_WITHOUT_DETAIL_URL:
                    break
        return count

    def _find_image(self, document: PageDocument) -> Optional[str]:
        for selector in SINGLE_IMAGE_SELECTORS:
            element = document.select_one(selector)
            if element is not None:
                image = first_image(element, document.url)
                if image:
                    return image
        return None

    def _find_features(self, document: PageDocument) -> List[str]:
        for selector in SINGLE_FEATURE_SELECTORS:
            features = [t for t in (text_of(li) for li in document.select(selector)) if 5 < len(t) < 200]
            if features:
                return features[:MAX_FEATURES]
        return []

    def _find_description(self, document: PageDocument, features: List[str]) -> str:
        for selector in SINGLE_DESCRIPTION_SELECTORS:
            element = document.select_one(selector)
            if element is None:
                continue
            content = element.get("content")
            text = content.strip() if isinstance(content, str) else text_of(element)
            if text:
                return text[:MAX_DESCRIPTION_LENGTH]
        return " | ".join(features[:5])[:MAX_DESCRIPTION_LENGTH]

    def _find_availability(self, document: PageDocument) -> Optional[bool]:
        for selector in AVAILABILITY_SELECTORS:
            element = document.select_one(selector)
            if element is None:
                continue
            raw = " ".join(str(v) for v in (element.get("content"), element.get("href"), text_of(element)) if v)
            compact = raw.lower().replace(" ", "")
            if "outofstock" in compact or "soldout" in compact:
                return False
            if "instock" in compact:
                return True
            state = availability(raw)
            if state is not None:
                return state
        return None

    def detect(self, document: PageDocument, allow_fallbacks: bool = False) -> Optional[ProductRecord]:
        detail_url = self.has_detail_url(document)
        title = self._find_title(document, detail_url)
        price = self._find_price(document)

        if title and not detail_url and self._count_prices(document) > MAX_PRICES_WITHOUT_DETAIL_URL:
            # Looks like a listing with a unique heading, not a detail page.
            title = None

        if not title:
            if not allow_fallbacks:
                return None
            heading = document.select_one("h1")
            title = clean_title(text_of(heading))
            if price is None:
                price = parse_price(text_of(document.body))
            if price is None:
                return None

        features = self._find_features(document)
        record = build_record(
            title,
            price=price,
            url=document.url,
            description=self._find_description(document, features),
            image_url=self._find_image(document),
            rating=extract_rating(document.body),
            review_count=extract_review_count(document.body),
            in_stock=self._find_availability(document),
            features=features,
        )
        if record is not None:
            logger.debug(f"Single product page detected: {record.title[:60]}")
        return record
