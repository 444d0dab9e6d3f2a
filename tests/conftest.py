"""Shared fixtures."""

import json

import httpx
import pytest

from sift.channel import LocalMessageChannel
from sift.config import Settings
from sift.models import ProductContext, TrackedLink
from sift.research.history import ResearchHistoryStore
from sift.research.session import SessionContextHolder
from sift.router import MessageRouter
from sift.scoring.client import ScoringClient
from sift.sites.classifier import SiteRelevanceClassifier
from sift.storage import MemoryKeyValueStore, SQLiteKeyValueStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScoringStub:
    """Records requests to the scoring service and answers with canned JSON."""

    def __init__(self):
        self.calls = []
        self.site_response = {"isShoppingSite": False, "matchScore": 0}
        self.rank_response = {"rankings": [], "summary": "ok"}
        self.status_code = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.calls.append((request.url.path, body))
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream failure")
        if request.url.path.endswith("/api/analyze-site"):
            return httpx.Response(200, json=self.site_response)
        if request.url.path.endswith("/api/rank-products"):
            return httpx.Response(200, json=self.rank_response)
        return httpx.Response(404, json={"error": "Not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def paths(self):
        return [path for path, _ in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def durable_store(tmp_path):
    return SQLiteKeyValueStore(str(tmp_path / "sift.db"))


@pytest.fixture
def session_store():
    return MemoryKeyValueStore()


@pytest.fixture
def history(durable_store, clock):
    return ResearchHistoryStore(durable_store, clock=clock)


@pytest.fixture
def session(session_store):
    return SessionContextHolder(session_store)


@pytest.fixture
def scoring():
    return ScoringStub()


@pytest.fixture
def client(scoring):
    return ScoringClient(base_url="http://scoring.test", transport=scoring.transport)


@pytest.fixture
def classifier(history, session, client):
    return SiteRelevanceClassifier(history, session, client)


@pytest.fixture
def router(session, history, client, classifier):
    return MessageRouter(session, history, client, classifier)


@pytest.fixture
def channel(router):
    return LocalMessageChannel(router)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=str(tmp_path / "app.db"),
        scoring_api_url="http://scoring.test",
        log_json=False,
        log_level="WARNING",
    )


def make_context(query="best espresso machine under $500", **kwargs) -> ProductContext:
    kwargs.setdefault("requirements", ["under $500"])
    kwargs.setdefault("source", "chatgpt")
    return ProductContext(query=query, **kwargs)


def tracked(url: str, text: str = "") -> TrackedLink:
    host = url.split("//", 1)[-1].split("/", 1)[0]
    return TrackedLink(url=url, domain=host.removeprefix("www."), text=text)
