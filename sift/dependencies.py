"""Service wiring and FastAPI dependencies."""

from typing import Optional

import httpx
from fastapi import Request

from sift.analyzer import PageAnalyzer
from sift.capture import ConversationCapture
from sift.channel import LocalMessageChannel
from sift.config import Settings, get_settings
from sift.extraction.engine import ProductExtractionEngine
from sift.research.history import ResearchHistoryStore
from sift.research.session import SessionContextHolder
from sift.router import MessageRouter
from sift.scoring.client import ScoringClient
from sift.sites.classifier import SiteRelevanceClassifier
from sift.storage import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore, get_api_url_override
from sift.utils.cache import TTLCache


class Services:
    """Everything one running instance needs, built once at start-up."""

    def __init__(
        self,
        settings: Settings,
        durable_store: KeyValueStore,
        session_store: KeyValueStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.durable_store = durable_store
        self.session_store = session_store
        self.session = SessionContextHolder(session_store)
        self.history = ResearchHistoryStore(
            durable_store,
            max_entries=settings.history_max_entries,
            max_age_days=settings.history_max_age_days,
        )
        self.client = ScoringClient(
            base_url=settings.scoring_api_url,
            timeout=settings.scoring_timeout,
            url_override=lambda: get_api_url_override(durable_store),
            transport=transport,
            max_products=settings.max_ranked_products,
        )
        self.classifier = SiteRelevanceClassifier(
            self.history,
            self.session,
            self.client,
            threshold=settings.site_match_threshold,
            cache=TTLCache(settings.site_cache_ttl),
        )
        self.router = MessageRouter(
            self.session,
            self.history,
            self.client,
            self.classifier,
            timeout=settings.message_timeout,
            max_message_bytes=settings.max_message_bytes,
        )
        self.channel = LocalMessageChannel(self.router)

    def page_analyzer(self) -> PageAnalyzer:
        """Fresh analyzer for one page load, bound to the shared channel."""
        s = self.settings
        return PageAnalyzer(
            self.channel,
            ProductExtractionEngine(cache_ttl=s.extraction_cache_ttl),
            score_threshold=s.ranking_score_threshold,
            max_shown=s.max_shown_products,
            settle_delay=s.extraction_settle_delay,
            wait_budget=s.extraction_wait_budget,
            poll_interval=s.extraction_poll_interval,
        )

    def conversation_capture(self) -> ConversationCapture:
        return ConversationCapture(self.channel)


def build_services(
    settings: Optional[Settings] = None,
    durable_store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    settings = settings or get_settings()
    return Services(
        settings=settings,
        durable_store=durable_store or SQLiteKeyValueStore(settings.db_path),
        session_store=MemoryKeyValueStore(),
        transport=transport,
    )


def get_services(request: Request) -> Services:
    """Services attached to the application at start-up."""
    return request.app.state.services


def get_router(request: Request) -> MessageRouter:
    return get_services(request).router
