"""Decides whether a visited page is relevant to anything the user researched."""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel

from sift.exceptions import SiftAppError
from sift.models import ProductContext, ResearchEntry, SiteAnalysis
from sift.research.history import ResearchHistoryStore
from sift.research.session import SessionContextHolder
from sift.scoring.client import MAX_HISTORY, ScoringClient
from sift.sites.detection import extract_domain, is_definitely_not_shopping, match_tracked_link
from sift.utils.cache import TTLCache

logger = logging.getLogger(__name__)

SITE_MATCH_THRESHOLD = 50
SITE_CACHE_TTL = 60 * 60


class SiteDecision(str, Enum):
    SKIP = "skip"
    NO_MATCH = "no_match"
    MATCH = "match"


class SiteClassification(BaseModel):
    """Outcome of classifying one navigation."""

    decision: SiteDecision
    entry: Optional[ResearchEntry] = None
    context: Optional[ProductContext] = None
    via: Optional[str] = None
    score: Optional[float] = None
    reason: Optional[str] = None

    @property
    def is_match(self) -> bool:
        return self.decision == SiteDecision.MATCH


class SiteRelevanceClassifier:
    """
    Three-way classifier: skip, no-match or match.

    Local checks run first (empty history, skip list, tracked links) and
    never touch the network. Everything else is delegated to the scoring
    service; any failure there is reported as no-match.
    """

    def __init__(
        self,
        history: ResearchHistoryStore,
        session: SessionContextHolder,
        client: ScoringClient,
        threshold: float = SITE_MATCH_THRESHOLD,
        cache: Optional[TTLCache] = None,
    ):
        self.history = history
        self.session = session
        self.client = client
        self.threshold = threshold
        self.cache = cache if cache is not None else TTLCache(SITE_CACHE_TTL)

    def _context_entry(self, context: ProductContext) -> Optional[ResearchEntry]:
        lowered = context.query.lower()
        for entry in self.history.list():
            if (context.conversation_id and entry.conversation_id == context.conversation_id) or entry.query.lower() == lowered:
                return self.history.touch(entry.id) or entry
        return None

    @staticmethod
    def _cache_key(domain: str, entries: List[ResearchEntry]) -> Tuple:
        # The answer depends on the research sent along, not just the domain.
        return (domain,) + tuple(
            (e.id, e.query, e.product_name, tuple(e.requirements), tuple(e.categories)) for e in entries
        )

    async def _analyze(self, url: str, title: str, description: Optional[str], entries: List[ResearchEntry]) -> SiteAnalysis:
        domain = extract_domain(url) or url
        key = self._cache_key(domain, entries)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Using cached site analysis for {domain}")
            return cached

        analysis = await self.client.analyze_site(url, title, entries, description=description)
        self.cache.set(key, analysis)
        return analysis

    async def classify(self, url: str, title: str = "", description: Optional[str] = None) -> SiteClassification:
        entries = self.history.recent(MAX_HISTORY)
        if not entries:
            return SiteClassification(decision=SiteDecision.SKIP, reason="No research history")

        if is_definitely_not_shopping(url):
            return SiteClassification(decision=SiteDecision.SKIP, reason="Known non-shopping site")

        context = self.session.get()
        if context is not None:
            link = match_tracked_link(url, context.tracked_links)
            if link is not None:
                logger.info(f"Tracked link match for {link.domain}")
                return SiteClassification(
                    decision=SiteDecision.MATCH,
                    entry=self._context_entry(context),
                    context=context,
                    via="tracked_link",
                    reason=f"Linked from your research: {link.text or link.domain}",
                )

        try:
            analysis = await self._analyze(url, title, description, entries)
        except SiftAppError as e:
            logger.warning(f"Site analysis failed for {url}: {e}")
            return SiteClassification(decision=SiteDecision.NO_MATCH, reason="Site analysis unavailable")

        if not analysis.is_shopping_site:
            return SiteClassification(decision=SiteDecision.NO_MATCH, score=analysis.match_score, reason="Not a shopping site")
        if not analysis.matched_research_id or analysis.match_score <= self.threshold:
            return SiteClassification(
                decision=SiteDecision.NO_MATCH,
                score=analysis.match_score,
                reason=analysis.match_reason or "No related research",
            )

        entry = self.history.touch(analysis.matched_research_id)
        if entry is None:
            logger.warning(f"Scoring service matched unknown research id {analysis.matched_research_id}")
            return SiteClassification(decision=SiteDecision.NO_MATCH, score=analysis.match_score)

        logger.info(f"Site matched research {entry.id} with score {analysis.match_score}")
        return SiteClassification(
            decision=SiteDecision.MATCH,
            entry=entry,
            via="analysis",
            score=analysis.match_score,
            reason=analysis.match_reason,
        )
