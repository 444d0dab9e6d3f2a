"""Field extraction shared by every strategy: one container element in, one record out."""

import logging
import re
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from bs4 import Tag
from pydantic import ValidationError

from sift.extraction.patterns import (
    BARE_PRICE_RE,
    CURRENCY_RE,
    DESCRIPTION_SELECTORS,
    IN_STOCK_PHRASES,
    MAX_CONTAINER_TEXT,
    MAX_DESCRIPTION_LENGTH,
    MIN_TITLE_LENGTH,
    OUT_OF_STOCK_PHRASES,
    PLACEHOLDER_HREF_PREFIXES,
    PLACEHOLDER_IMAGE_HINTS,
    RATING_NUMBER_RE,
    RATING_RE,
    RATING_SELECTORS,
    REVIEW_COUNT_RE,
    REVIEW_COUNT_SELECTORS,
    SPONSORED_LABELS,
    SPONSORED_SELECTORS,
    SPONSORED_URL_RE,
    TITLE_SELECTORS,
)
from sift.models import ProductRecord

logger = logging.getLogger(__name__)

# Link and button text that names UI chrome, never a product
GARBAGE_TEXT = frozenset(
    {
        "quick view", "add to cart", "add to bag", "buy now", "shop now",
        "view details", "see details", "learn more", "read more", "see more",
        "show more", "load more", "view all", "see all", "compare", "save",
        "share", "wishlist", "notify me", "sold out", "out of stock", "in stock",
        "free shipping", "best seller", "new arrival", "sponsored", "see options",
        "sign in", "sign up", "subscribe", "home", "menu", "search", "account",
        "cart", "checkout", "help", "contact us", "customer service",
    }
)


def text_of(tag: Optional[Tag]) -> str:
    if tag is None:
        return ""
    return re.sub(r"\s+", " ", tag.get_text(" ", strip=True)).strip()


def parse_price(text: Optional[str], require_symbol: bool = True) -> Optional[float]:
    """
    First price in ``text`` as a float, or None.

    With ``require_symbol=False`` a bare number is accepted too, which is only
    safe for elements already known to hold a price.

    >>> parse_price("$1,299.99")
    1299.99
    """
    if not text:
        return None
    match = CURRENCY_RE.search(text) or (None if require_symbol else BARE_PRICE_RE.search(text))
    if not match:
        return None
    digits = match.group(1).replace(",", "")
    try:
        value = float(digits)
    except ValueError:
        return None
    return value if value >= 0 else None


def clean_title(text: str) -> str:
    """Strip embedded price text and separator debris from a candidate title."""
    cleaned = CURRENCY_RE.sub(" ", text or "")
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip(" \t\n-|:•·,")


def is_placeholder_href(href: Optional[str]) -> bool:
    if not href or not href.strip():
        return True
    return href.strip().lower().startswith(PLACEHOLDER_HREF_PREFIXES)


def first_link(container: Tag, base_url: str) -> str:
    anchors = [container] if container.name == "a" else []
    anchors.extend(container.find_all("a", href=True))
    for anchor in anchors:
        href = anchor.get("href")
        if isinstance(href, str) and not is_placeholder_href(href):
            return urljoin(base_url, href.strip())
    return ""


def _image_source(img: Tag) -> Optional[str]:
    for attr in ("src", "data-src", "data-lazy-src", "data-original", "content"):
        value = img.get(attr)
        if isinstance(value, str) and value.strip() and not value.startswith("data:"):
            return value.strip()
    srcset = img.get("srcset")
    if isinstance(srcset, str) and srcset.strip():
        return srcset.split(",")[0].split()[0]
    return None


def first_image(container: Tag, base_url: str) -> Optional[str]:
    images = [container] if container.name in ("img", "meta") else []
    images.extend(container.find_all("img"))
    for img in images:
        src = _image_source(img)
        if src and not any(hint in src.lower() for hint in PLACEHOLDER_IMAGE_HINTS):
            return urljoin(base_url, src)
    return None


def extract_title(container: Tag) -> Optional[str]:
    """First heading, title-class element or anchor text that reads like a title."""
    candidates: List[str] = []
    if container.name == "a":
        candidates.append(text_of(container))
    for selector in TITLE_SELECTORS:
        for element in container.select(selector, limit=3):
            if selector == "a[title]":
                candidates.append(str(element.get("title") or ""))
            else:
                candidates.append(text_of(element))
    for img in container.find_all("img", alt=True, limit=2):
        candidates.append(str(img.get("alt") or ""))

    for candidate in candidates:
        title = clean_title(candidate)
        if len(title) >= MIN_TITLE_LENGTH and title.lower() not in GARBAGE_TEXT:
            return title
    return None


def extract_description(container: Tag, title: str) -> str:
    for selector in DESCRIPTION_SELECTORS:
        element = container.select_one(selector)
        text = text_of(element)
        if len(text) > 10 and text != title:
            return text[:MAX_DESCRIPTION_LENGTH]
    return ""


def extract_rating(container: Tag) -> Optional[float]:
    for selector in RATING_SELECTORS:
        element = container.select_one(selector)
        if element is None:
            continue
        for raw in (element.get("content"), element.get("aria-label"), text_of(element)):
            if not isinstance(raw, str) or not raw:
                continue
            match = RATING_RE.search(raw)
            if not match and selector == "[itemprop=ratingValue]":
                match = RATING_NUMBER_RE.search(raw)
            if match:
                value = float(match.group(1))
                if 0 <= value <= 5:
                    return value
    match = RATING_RE.search(text_of(container))
    if match and 0 <= float(match.group(1)) <= 5:
        return float(match.group(1))
    return None


def extract_review_count(container: Tag) -> Optional[int]:
    for selector in REVIEW_COUNT_SELECTORS:
        element = container.select_one(selector)
        if element is None:
            continue
        raw = element.get("content") if isinstance(element.get("content"), str) else text_of(element)
        digits = re.sub(r"[^0-9]", "", raw or "")
        if digits and (selector.startswith("[itemprop") or REVIEW_COUNT_RE.search(raw) or raw.strip("() ").replace(",", "").isdigit()):
            return int(digits)
    match = REVIEW_COUNT_RE.search(text_of(container))
    return int(match.group(1).replace(",", "")) if match else None


def availability(text: str) -> Optional[bool]:
    """False on an explicit out-of-stock signal, True on an in-stock one, else unknown."""
    lowered = (text or "").lower()
    if any(phrase in lowered for phrase in OUT_OF_STOCK_PHRASES):
        return False
    if any(phrase in lowered for phrase in IN_STOCK_PHRASES):
        return True
    return None


def is_sponsored(container: Tag) -> bool:
    """Best-effort ad detection: marker elements, a bare "Sponsored" label, or ad-redirect links."""
    classes = " ".join(container.get("class") or []).lower()
    if container.get("data-sponsored") is not None or "sponsored" in classes:
        return True
    if any(container.select_one(selector) is not None for selector in SPONSORED_SELECTORS):
        return True
    for element in container.find_all(["span", "div", "p", "small", "label"], limit=60):
        if element.get_text(strip=True).lower() in SPONSORED_LABELS:
            return True
    return any(SPONSORED_URL_RE.search(a.get("href") or "") for a in container.find_all("a", href=True, limit=10))


def build_record(title: Optional[str], **fields) -> Optional[ProductRecord]:
    """Validated record, or None when the title is missing or too short."""
    title = clean_title(title or "")
    if len(title) < MIN_TITLE_LENGTH:
        return None
    try:
        return ProductRecord(title=title, **fields)
    except ValidationError as e:
        logger.debug(f"Dropping invalid product record {title[:40]!r}: {e.errors()[0]['msg']}")
        return None


def extract_record(container: Tag, base_url: str) -> Optional[ProductRecord]:
    """Build a record from one product card, or None when it doesn't look like one."""
    text = text_of(container)
    if not text or len(text) > MAX_CONTAINER_TEXT:
        return None
    title = extract_title(container)
    if not title:
        return None
    rating = extract_rating(container)
    return build_record(
        title,
        price=parse_price(text),
        url=first_link(container, base_url),
        description=extract_description(container, title),
        image_url=first_image(container, base_url),
        rating=rating,
        review_count=extract_review_count(container),
        in_stock=availability(text),
    )


def dedupe_records(records: Iterable[ProductRecord]) -> List[ProductRecord]:
    seen = set()
    unique: List[ProductRecord] = []
    for record in records:
        key = (record.title.lower(), record.url)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique
