"""Product extraction engine: strategy cascade, short-lived cache and the wait-for-products loop."""

import asyncio
import logging
import time
from typing import Callable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from sift.extraction.document import PageDocument
from sift.extraction.domains import DEFAULT_DOMAIN_PARSERS, DomainParser, parser_for
from sift.extraction.generic import GENERIC_STAGES, USABLE_COUNT
from sift.extraction.single import SingleProductDetector
from sift.models import ProductRecord

logger = logging.getLogger(__name__)

CACHE_TTL = 2.0
SETTLE_DELAY = 1.0
WAIT_BUDGET = 8.0
POLL_INTERVAL = 0.8


class ExtractionOutcome(BaseModel):
    """Result of waiting for products; an empty record list means "no products found"."""

    records: List[ProductRecord] = Field(default_factory=list)
    strategy: Optional[str] = None
    waited: float = 0.0

    @property
    def found(self) -> bool:
        return bool(self.records)


def filter_in_stock(records: List[ProductRecord]) -> List[ProductRecord]:
    """Drop explicitly unavailable products unless that would leave nothing."""
    available = [r for r in records if r.in_stock is not False]
    return available or records


class ProductExtractionEngine:
    """
    Turns a page snapshot into product records.

    Cascade: per-domain parser, single-product detector, generic stages
    (card pattern, price anchor, repeated structure, image link), then the
    single-product detector with last-resort selectors. A stage is usable
    when it yields at least two records; a lone record from any stage is
    kept as a last resort rather than reporting no products.

    Results are cached for ``cache_ttl`` seconds; :meth:`notify_mutation`
    invalidates the cache before the next read.
    """

    def __init__(
        self,
        document: Optional[PageDocument] = None,
        domain_parsers: Optional[Mapping[str, DomainParser]] = None,
        single_detector: Optional[SingleProductDetector] = None,
        cache_ttl: float = CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.document = document
        self.domain_parsers = DEFAULT_DOMAIN_PARSERS if domain_parsers is None else domain_parsers
        self.single_detector = single_detector or SingleProductDetector()
        self.cache_ttl = cache_ttl
        self.clock = clock
        self.last_strategy: Optional[str] = None
        self._cache: Optional[Tuple[float, List[ProductRecord], Optional[str]]] = None
        self._mutated = asyncio.Event()

    def notify_mutation(self, document: Optional[PageDocument] = None) -> None:
        """The page changed: drop cached results and wake any waiter."""
        if document is not None:
            self.document = document
        self._cache = None
        self._mutated.set()

    def extract(self) -> List[ProductRecord]:
        if self.document is None:
            return []
        if self._cache is not None:
            captured_at, records, strategy = self._cache
            if self.clock() - captured_at < self.cache_ttl:
                self.last_strategy = strategy
                return records

        records, strategy = self._run_cascade(self.document)
        self.last_strategy = strategy
        self._cache = (self.clock(), records, strategy)
        logger.debug(f"Extracted {len(records)} products from {self.document.hostname} via {strategy}")
        return records

    def _run_cascade(self, document: PageDocument) -> Tuple[List[ProductRecord], Optional[str]]:
        partial: Tuple[List[ProductRecord], Optional[str]] = ([], None)

        parser = parser_for(document.hostname, self.domain_parsers)
        if parser is not None:
            records = parser.parse_listing(document)
            if len(records) >= USABLE_COUNT:
                return filter_in_stock(records), "domain"
            if records:
                partial = (records, "domain")
            single = parser.parse_single(document)
            if single is not None:
                return [single], "domain_single"

        single = self.single_detector.detect(document)
        if single is not None and self.single_detector.has_detail_url(document):
            return [single], "single"

        # Without a detail URL a lone "product" heading may sit above a small listing.
        for name, stage in GENERIC_STAGES:
            records = stage(document)
            if len(records) >= USABLE_COUNT:
                return filter_in_stock(records), name
            if records and not partial[0]:
                partial = (records, name)

        if single is not None:
            return [single], "single"

        single = self.single_detector.detect(document, allow_fallbacks=True)
        if single is not None:
            return [single], "single_fallback"

        records, strategy = partial
        return filter_in_stock(records), strategy

    async def wait_for_products(
        self,
        settle_delay: float = SETTLE_DELAY,
        budget: float = WAIT_BUDGET,
        poll_interval: float = POLL_INTERVAL,
    ) -> ExtractionOutcome:
        """
        Wait for products to render, re-scraping on every mutation or poll tick.

        Gives up after ``budget`` seconds (settle delay included), then tries
        the single-product detector with last-resort selectors, then reports
        an empty outcome.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + budget

        await asyncio.sleep(settle_delay)
        while True:
            records = self.extract()
            if records:
                return ExtractionOutcome(records=records, strategy=self.last_strategy, waited=loop.time() - started)
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            self._mutated.clear()
            try:
                await asyncio.wait_for(self._mutated.wait(), timeout=min(poll_interval, remaining))
            except asyncio.TimeoutError:
                pass

        waited = loop.time() - started
        if self.document is not None:
            single = self.single_detector.detect(self.document, allow_fallbacks=True)
            if single is not None:
                return ExtractionOutcome(records=[single], strategy="single_fallback", waited=waited)

        logger.info(f"No products found after {waited:.1f}s")
        return ExtractionOutcome(records=[], strategy=None, waited=waited)
