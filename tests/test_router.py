"""Tests for the message router and local channel."""

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import make_context

from sift.channel import RELOAD_MESSAGE
from sift.exceptions import HostContextInvalidated
from sift.router import NO_CONTEXT_ERROR, RANKING_FAILED_ERROR, MessageRouter

PRODUCTS = [
    {"title": "Breville Bambino Plus", "price": 499.95},
    {"title": "Gaggia Classic Pro", "price": 449.0, "inStock": True},
]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "message,error",
    [
        ({"type": "FROBNICATE"}, "Unknown message type: FROBNICATE"),
        ({"context": {}}, "Message type is required"),
        ({"type": ""}, "Message type is required"),
        (["SAVE_CONTEXT"], "Message must be a JSON object"),
    ],
)
async def test_rejects_bad_envelopes(router, message, error):
    assert await router.dispatch(message) == {"error": error}


@pytest.mark.asyncio
async def test_rejects_malformed_payload(router, session):
    reply = await router.dispatch({"type": "SAVE_CONTEXT", "context": {"query": ""}})

    assert reply["error"].startswith("Invalid SAVE_CONTEXT message: context.query")
    assert session.get() is None


@pytest.mark.asyncio
async def test_rejects_oversized_message(session, history, client, classifier):
    router = MessageRouter(session, history, client, classifier, max_message_bytes=200)
    reply = await router.dispatch({"type": "SAVE_CONTEXT", "context": {"query": "espresso " * 50}})

    assert reply["error"].startswith("Message too large")
    assert session.get() is None


@pytest.mark.asyncio
async def test_save_context_updates_session_and_history(router, history):
    context = make_context(conversation_id="conv-1")
    reply = await router.dispatch({"type": "SAVE_CONTEXT", "context": context.to_wire()})

    assert reply == {"success": True}
    assert [e.id for e in history.list()] == ["conv-1"]

    reply = await router.dispatch({"type": "GET_CONTEXT"})
    assert reply["context"]["query"] == "best espresso machine under $500"
    assert reply["context"]["conversationId"] == "conv-1"

    reply = await router.dispatch({"type": "CHECK_CONTEXT_EXISTS"})
    assert reply["exists"] is True

    assert await router.dispatch({"type": "CLEAR_CONTEXT"}) == {"success": True}
    assert await router.dispatch({"type": "CHECK_CONTEXT_EXISTS"}) == {"exists": False, "context": None}
    assert await router.dispatch({"type": "GET_CONTEXT"}) == {"context": None}


@pytest.mark.asyncio
async def test_history_messages(router, history):
    history.upsert(make_context(conversation_id="conv-1"))

    reply = await router.dispatch({"type": "GET_HISTORY"})
    assert [item["id"] for item in reply["history"]] == ["conv-1"]
    assert reply["history"][0]["productName"] == "Espresso Machine"

    assert await router.dispatch({"type": "DELETE_HISTORY_ENTRY", "id": "conv-1"}) == {"success": True}
    assert await router.dispatch({"type": "DELETE_HISTORY_ENTRY", "id": "conv-1"}) == {"success": True}
    assert (await router.dispatch({"type": "GET_HISTORY"}))["history"] == []


@pytest.mark.asyncio
async def test_rank_without_context(router, scoring):
    reply = await router.dispatch({"type": "RANK_PRODUCTS", "products": PRODUCTS})

    assert reply == {"error": NO_CONTEXT_ERROR}
    assert scoring.calls == []


@pytest.mark.asyncio
async def test_rank_without_products(router, session):
    session.save(make_context())
    assert await router.dispatch({"type": "RANK_PRODUCTS", "products": []}) == {"error": "No products to rank"}


@pytest.mark.asyncio
async def test_rank_with_session_context(router, session, scoring):
    session.save(make_context())
    scoring.rank_response = {
        "rankings": [{"index": 1, "score": 64, "reasons": ["Cheaper"]}, {"index": 0, "score": 91, "reasons": ["Fits budget"]}],
        "summary": "Bambino fits best",
    }

    reply = await router.dispatch({"type": "RANK_PRODUCTS", "products": PRODUCTS})

    assert reply == {
        "rankings": [
            {"index": 0, "score": 91.0, "reasons": ["Fits budget"]},
            {"index": 1, "score": 64.0, "reasons": ["Cheaper"]},
        ],
        "summary": "Bambino fits best",
    }
    _, body = scoring.calls[0]
    assert body["context"]["query"] == "best espresso machine under $500"
    assert body["products"][1]["inStock"] is True


@pytest.mark.asyncio
async def test_rank_falls_back_to_history_entry(router, history, scoring, clock):
    history.upsert(make_context("trail running shoes for men", conversation_id="conv-7", requirements=["waterproof"]))
    clock.advance(30)
    scoring.rank_response = {"rankings": [{"index": 0, "score": 75}]}

    reply = await router.dispatch({"type": "RANK_PRODUCTS", "products": PRODUCTS, "researchId": "conv-7"})

    assert reply["rankings"][0]["score"] == 75.0
    _, body = scoring.calls[0]
    assert body["context"] == {"query": "trail running shoes for men", "requirements": ["waterproof"]}
    assert history.get("conv-7").last_used == clock.now


@pytest.mark.asyncio
async def test_rank_service_failure(router, session, scoring):
    session.save(make_context())
    scoring.status_code = 503

    reply = await router.dispatch({"type": "RANK_PRODUCTS", "products": PRODUCTS})
    assert reply == {"error": RANKING_FAILED_ERROR}


@pytest.mark.asyncio
async def test_check_site_reply_shape(router):
    reply = await router.dispatch({"type": "CHECK_SITE", "url": "https://www.amazon.com/s?k=espresso"})

    assert reply["decision"] == "skip"
    assert reply["entry"] is None


@pytest.mark.asyncio
async def test_handler_timeout(session, history, client):
    async def slow_classify(*args, **kwargs):
        await asyncio.sleep(5)

    classifier = MagicMock()
    classifier.classify = slow_classify
    router = MessageRouter(session, history, client, classifier, timeout=0.05)

    reply = await router.dispatch({"type": "CHECK_SITE", "url": "https://shop.example.com"})
    assert reply == {"error": "CHECK_SITE timed out. Please try again."}


@pytest.mark.asyncio
async def test_ping(router):
    assert await router.dispatch({"type": "PING"}) == {"ok": True}


@pytest.mark.asyncio
async def test_channel_invalidation(channel):
    assert await channel.send({"type": "PING"}) == {"ok": True}

    channel.invalidate()
    assert not channel.is_valid
    with pytest.raises(HostContextInvalidated, match=RELOAD_MESSAGE):
        await channel.send({"type": "PING"})
