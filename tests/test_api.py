"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from sift.dependencies import build_services
from sift.main import create_app
from sift.router import NO_CONTEXT_ERROR

CONTEXT = {
    "query": "best espresso machine under $500",
    "requirements": ["under $500"],
    "source": "manual",
    "conversationId": "conv-1",
}

LISTING_HTML = "<html><body>" + "".join(
    f'<div class="product-card"><h3><a href="/p/{name.lower()}">{name} Espresso Maker</a></h3>'
    f'<span class="price">${price}</span></div>'
    for name, price in (("Alpha", "199.00"), ("Bravo", "249.00"), ("Charlie", "299.00"))
) + "</body></html>"


@pytest.fixture
def api(settings, scoring):
    """Test client with the scoring service stubbed out."""
    services = build_services(settings, transport=scoring.transport)
    with TestClient(create_app(settings, services)) as client:
        yield client


def test_health(api):
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "sift", "version": "1.0.0"}
    assert response.headers["X-Request-ID"]


def test_request_id_is_echoed(api):
    response = api.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


def test_context_lifecycle(api):
    assert api.get("/api/context").json() == {"ok": True, "context": None}

    response = api.post("/api/context", json=CONTEXT)
    assert response.status_code == 200
    assert response.json() == {"ok": True}

    data = api.get("/api/context").json()
    assert data["context"]["query"] == CONTEXT["query"]
    assert api.get("/api/context/exists").json()["exists"] is True

    items = api.get("/api/history").json()["items"]
    assert [item["id"] for item in items] == ["conv-1"]

    assert api.delete("/api/context").json() == {"ok": True}
    assert api.get("/api/context/exists").json()["exists"] is False

    assert api.delete("/api/history/conv-1").json() == {"ok": True}
    assert api.get("/api/history").json()["items"] == []


def test_blank_query_rejected(api):
    response = api.post("/api/context", json={"query": "   "})
    assert response.status_code == 422


def test_message_endpoint_returns_errors_in_body(api):
    response = api.post("/api/messages", json={"type": "FROBNICATE"})
    assert response.status_code == 200
    assert response.json() == {"error": "Unknown message type: FROBNICATE"}

    assert api.post("/api/messages", json={"type": "PING"}).json() == {"ok": True}


def test_rank_products_without_context(api, scoring):
    response = api.post("/api/rank-products", json={"products": [{"title": "Alpha Espresso Maker"}]})

    assert response.status_code == 400
    assert response.json()["detail"] == NO_CONTEXT_ERROR
    assert scoring.calls == []


def test_rank_products(api, scoring):
    api.post("/api/context", json=CONTEXT)
    scoring.rank_response = {"rankings": [{"index": 0, "score": 88, "reasons": ["Within budget"]}], "summary": "Good"}

    response = api.post(
        "/api/rank-products",
        json={"products": [{"title": "Alpha Espresso Maker", "price": 199.0}, {"title": "Bravo Espresso Maker"}]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["rankings"] == [{"index": 0, "score": 88.0, "reasons": ["Within budget"]}]
    assert data["summary"] == "Good"


def test_rank_products_service_failure(api, scoring):
    api.post("/api/context", json=CONTEXT)
    scoring.status_code = 500

    response = api.post("/api/rank-products", json={"products": [{"title": "Alpha Espresso Maker"}]})
    assert response.status_code == 502


def test_check_site(api):
    response = api.post("/api/check-site", json={"url": "https://www.google.com/search?q=espresso"})
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["decision"] == "skip"


def test_extract(api):
    response = api.post("/api/extract", json={"url": "https://shop.example.com/espresso", "html": LISTING_HTML})

    data = response.json()
    assert data["found"] is True
    assert data["count"] == 3
    assert data["strategy"] == "card_pattern"
    assert data["products"][0] == {
        "title": "Alpha Espresso Maker",
        "price": 199.0,
        "url": "https://shop.example.com/p/alpha",
        "description": "",
        "imageUrl": None,
        "rating": None,
        "reviewCount": None,
        "inStock": None,
        "features": [],
    }


def test_extract_no_products(api):
    response = api.post("/api/extract", json={"url": "https://shop.example.com/about", "html": "<p>About us</p>"})
    assert response.json()["found"] is False
    assert response.json()["count"] == 0


def test_api_url_override(api, scoring):
    assert api.get("/api/config/api-url").json()["apiUrl"] == "http://scoring.test"

    assert api.put("/api/config/api-url", json={"apiUrl": "ftp://nope"}).status_code == 400

    response = api.put("/api/config/api-url", json={"apiUrl": "http://custom.test/"})
    assert response.json()["apiUrl"] == "http://custom.test"
    data = api.get("/api/config/api-url").json()
    assert data["override"] == "http://custom.test"

    api.put("/api/config/api-url", json={"apiUrl": ""})
    assert api.get("/api/config/api-url").json() == {"ok": True, "apiUrl": "http://scoring.test", "override": None}
