"""
Domain-independent multi-product strategies.

Each scan returns the records it could build (possibly fewer than two); the
engine decides whether a stage's result is usable. All scans skip sponsored
containers and cap the number of elements they look at.
"""

import logging
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from bs4 import Tag

from sift.extraction.document import PageDocument
from sift.extraction.patterns import (
    CARD_SELECTORS,
    CURRENCY_RE,
    MAX_ANCESTOR_LEVELS,
    MAX_CARDS,
    MAX_CONTAINER_TEXT,
    MAX_IMAGE_LINKS,
    MAX_PRICE_ANCHORS,
    MAX_PRICE_TEXT,
    MIN_REPEATED_ITEMS,
    MIN_TITLE_LENGTH,
    PRICE_ONLY_RE,
    REPEATED_CONTAINER_SELECTORS,
)
from sift.extraction.records import dedupe_records, extract_record, is_placeholder_href, is_sponsored, text_of
from sift.models import ProductRecord

logger = logging.getLogger(__name__)

USABLE_COUNT = 2
IGNORED_TAGS = frozenset({"script", "style", "noscript", "template"})


def _outermost_free(containers: Sequence[Tag]) -> List[Tag]:
    """Drop containers nested inside another container of the same batch."""
    ids = {id(c) for c in containers}
    kept = []
    for container in containers:
        if not any(id(parent) in ids for parent in container.parents):
            kept.append(container)
    return kept


def _innermost_only(containers: Sequence[Tag]) -> List[Tag]:
    """Drop containers that wrap another container of the same batch."""
    nested_in = set()
    ids = {id(c) for c in containers}
    for container in containers:
        for parent in container.parents:
            if id(parent) in ids:
                nested_in.add(id(parent))
    return [c for c in containers if id(c) not in nested_in]


def _unique(containers: Iterable[Tag]) -> List[Tag]:
    seen = set()
    result = []
    for container in containers:
        if id(container) not in seen:
            seen.add(id(container))
            result.append(container)
    return result


def records_from(containers: Iterable[Tag], document: PageDocument, limit: int = MAX_CARDS) -> List[ProductRecord]:
    records = []
    for container in containers:
        if is_sponsored(container):
            continue
        record = extract_record(container, document.url)
        if record is not None:
            records.append(record)
        if len(records) >= limit:
            break
    return dedupe_records(records)


def _has_link(container: Tag) -> bool:
    if container.name == "a" and not is_placeholder_href(container.get("href")):
        return True
    return any(not is_placeholder_href(a.get("href")) for a in container.find_all("a", href=True, limit=10))


def _looks_like_card(container: Tag) -> bool:
    if not _has_link(container):
        return False
    if len(text_of(container)) > MAX_CONTAINER_TEXT:
        return False
    if container.find("img") is not None or container.find(["h1", "h2", "h3", "h4", "h5", "h6"]) is not None:
        return True
    return any(len(text_of(a)) >= MIN_TITLE_LENGTH for a in container.find_all("a", href=True, limit=10))


def card_pattern_scan(document: PageDocument) -> List[ProductRecord]:
    """Try common product-card selectors; stop at the first one yielding two or more records."""
    partial: List[ProductRecord] = []
    for selector in CARD_SELECTORS:
        containers = _outermost_free(document.select(selector, limit=MAX_CARDS * 3))
        if not containers:
            continue
        records = records_from(containers, document)
        if len(records) >= USABLE_COUNT:
            logger.debug(f"Card pattern {selector!r} matched {len(records)} products")
            return records
        partial = partial or records
    return partial


def _price_anchors(document: PageDocument) -> List[Tag]:
    anchors: List[Tag] = []
    seen = set()
    for string in document.body.find_all(string=CURRENCY_RE):
        parent = string.parent
        if parent is None or parent.name in IGNORED_TAGS:
            continue
        if len(str(string).strip()) > MAX_PRICE_TEXT:
            continue
        element = parent
        # Prices are often split over spans ("$", "19", ".99"); climb to the element holding all of it.
        for _ in range(2):
            if PRICE_ONLY_RE.match(text_of(element)) or element.parent is None:
                break
            element = element.parent
        if not PRICE_ONLY_RE.match(text_of(element)) or id(element) in seen:
            continue
        seen.add(id(element))
        anchors.append(element)
        if len(anchors) >= MAX_PRICE_ANCHORS:
            break
    return anchors


def price_anchored_scan(document: PageDocument) -> List[ProductRecord]:
    """Find price-only text, then walk up to the nearest ancestor that reads like a product card."""
    containers: List[Tag] = []
    body = document.body
    for anchor in _price_anchors(document):
        node = anchor
        for _ in range(MAX_ANCESTOR_LEVELS):
            node = node.parent
            if node is None or node is body or node.name in ("body", "html", "[document]"):
                break
            if _looks_like_card(node):
                containers.append(node)
                break
    containers = _innermost_only(_unique(containers))
    return records_from(containers, document)


def repeated_structure_scan(document: PageDocument) -> List[ProductRecord]:
    """Accept a list/grid only when at least three siblings each carry a price and a link."""
    partial: List[ProductRecord] = []
    for selector in REPEATED_CONTAINER_SELECTORS:
        groups: Dict[int, List[Tag]] = {}
        for item in document.select(selector):
            groups.setdefault(id(item.parent), []).append(item)
        for items in groups.values():
            qualifying = [item for item in items if CURRENCY_RE.search(text_of(item)) and _has_link(item)]
            if len(qualifying) < MIN_REPEATED_ITEMS:
                continue
            records = records_from(qualifying, document)
            if len(records) >= USABLE_COUNT:
                logger.debug(f"Repeated structure {selector!r} matched {len(records)} products")
                return records
            partial = partial or records
    return partial


def image_link_scan(document: PageDocument) -> List[ProductRecord]:
    """Anchors wrapping an image whose surrounding container shows a price."""
    containers: List[Tag] = []
    links = [a for a in document.body.find_all("a", href=True) if a.find("img") is not None]
    for link in links[:MAX_IMAGE_LINKS]:
        if is_placeholder_href(link.get("href")):
            continue
        node = link
        for _ in range(3):
            if CURRENCY_RE.search(text_of(node)):
                containers.append(node)
                break
            if node.parent is None or node.parent is document.body:
                break
            node = node.parent
    containers = _innermost_only(_unique(containers))
    return records_from(containers, document)


GENERIC_STAGES: Tuple[Tuple[str, Callable[[PageDocument], List[ProductRecord]]], ...] = (
    ("card_pattern", card_pattern_scan),
    ("price_anchor", price_anchored_scan),
    ("repeated_structure", repeated_structure_scan),
    ("image_link", image_link_scan),
)
