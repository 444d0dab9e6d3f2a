"""Page-side orchestration: classify the page, wait for products, rank them."""

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from sift.channel import RELOAD_MESSAGE, LocalMessageChannel
from sift.exceptions import HostContextInvalidated
from sift.extraction.document import PageDocument
from sift.extraction.engine import POLL_INTERVAL, SETTLE_DELAY, WAIT_BUDGET, ProductExtractionEngine
from sift.models import RankedProduct
from sift.scoring.client import MAX_PRODUCTS

logger = logging.getLogger(__name__)

RANKING_SCORE_THRESHOLD = 50
MAX_SHOWN_PRODUCTS = 5
NO_PRODUCTS_MESSAGE = "No products found on this page. Try a search results page."


class PageAnalysis(BaseModel):
    """What happened when a page was analyzed."""

    status: Literal["skipped", "no_match", "no_products", "ranked", "error", "busy", "halted"]
    classification: Optional[Dict[str, Any]] = None
    products: List[RankedProduct] = Field(default_factory=list)
    summary: Optional[str] = None
    error: Optional[str] = None
    strategy: Optional[str] = None


class PageAnalyzer:
    """
    Runs one analysis at a time for a page.

    ``is_analyzing`` is a latch: a request arriving while one is in flight
    is dropped (status ``busy``), not queued. After the host context is
    invalidated the analyzer is ``halted`` and does nothing until the page
    is reloaded (a new analyzer is created).
    """

    def __init__(
        self,
        channel: LocalMessageChannel,
        engine: Optional[ProductExtractionEngine] = None,
        score_threshold: float = RANKING_SCORE_THRESHOLD,
        max_shown: int = MAX_SHOWN_PRODUCTS,
        settle_delay: float = SETTLE_DELAY,
        wait_budget: float = WAIT_BUDGET,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.channel = channel
        self.engine = engine or ProductExtractionEngine()
        self.score_threshold = score_threshold
        self.max_shown = max_shown
        self.settle_delay = settle_delay
        self.wait_budget = wait_budget
        self.poll_interval = poll_interval
        self.is_analyzing = False
        self.halted = False

    def on_mutation(self, document: PageDocument) -> None:
        """Forward a fresh page snapshot to the extraction engine."""
        if not self.halted:
            self.engine.notify_mutation(document)

    async def analyze(self, document: PageDocument) -> PageAnalysis:
        if self.halted:
            return PageAnalysis(status="halted", error=RELOAD_MESSAGE)
        if self.is_analyzing:
            logger.debug("Analysis already in progress, dropping request")
            return PageAnalysis(status="busy")

        self.is_analyzing = True
        try:
            return await self._analyze(document)
        except HostContextInvalidated:
            self.halted = True
            logger.warning("Host context invalidated; halting analysis on this page")
            return PageAnalysis(status="halted", error=RELOAD_MESSAGE)
        finally:
            self.is_analyzing = False

    async def _analyze(self, document: PageDocument) -> PageAnalysis:
        check = await self.channel.send(
            {
                "type": "CHECK_SITE",
                "url": document.url,
                "title": document.title,
                "description": document.description,
            }
        )
        if "error" in check:
            return PageAnalysis(status="error", error=check["error"])

        decision = check.get("decision")
        if decision == "skip":
            return PageAnalysis(status="skipped", classification=check)
        if decision != "match":
            return PageAnalysis(status="no_match", classification=check)

        self.engine.notify_mutation(document)
        outcome = await self.engine.wait_for_products(
            settle_delay=self.settle_delay,
            budget=self.wait_budget,
            poll_interval=self.poll_interval,
        )
        if not outcome.found:
            return PageAnalysis(status="no_products", classification=check, error=NO_PRODUCTS_MESSAGE)

        products = outcome.records[:MAX_PRODUCTS]
        message: Dict[str, Any] = {"type": "RANK_PRODUCTS", "products": [p.to_wire() for p in products]}
        entry = check.get("entry")
        if entry and entry.get("id"):
            message["researchId"] = entry["id"]

        result = await self.channel.send(message)
        if "error" in result:
            return PageAnalysis(status="error", classification=check, error=result["error"], strategy=outcome.strategy)

        ranked: List[RankedProduct] = []
        for ranking in result.get("rankings", []):
            index, score = ranking.get("index"), ranking.get("score", 0)
            if not isinstance(index, int) or not 0 <= index < len(products) or score <= self.score_threshold:
                continue
            try:
                ranked.append(
                    RankedProduct(**products[index].model_dump(), score=score, reasons=ranking.get("reasons") or [])
                )
            except ValidationError:
                logger.warning(f"Ignoring malformed ranking for product {index}")
        ranked.sort(key=lambda p: p.score, reverse=True)

        logger.info(f"Showing {min(len(ranked), self.max_shown)} of {len(products)} products")
        return PageAnalysis(
            status="ranked",
            classification=check,
            products=ranked[: self.max_shown],
            summary=result.get("summary"),
            strategy=outcome.strategy,
        )
