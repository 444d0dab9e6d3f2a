"""FastAPI router exposing the message surface over HTTP."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, Field

from sift.dependencies import Services, get_router, get_services
from sift.extraction import PageDocument, ProductExtractionEngine
from sift.models import ProductContext, ProductRecord, WireModel
from sift.router import RANKING_FAILED_ERROR, MessageRouter
from sift.storage import API_URL_KEY, get_api_url_override

router = APIRouter()


class CheckSiteIn(BaseModel):
    """Page to classify."""

    url: str = Field(..., min_length=1)
    title: str = ""
    description: Optional[str] = None


class RankProductsIn(WireModel):
    """Products to rank against the current (or a stored) research context."""

    products: List[ProductRecord]
    research_id: Optional[str] = None


class ExtractIn(BaseModel):
    """Page snapshot to extract products from."""

    url: str = Field(..., min_length=1, description="URL the HTML was loaded from")
    html: str = Field(..., description="Full page HTML")


class ApiUrlIn(WireModel):
    api_url: Optional[str] = Field(None, description="Scoring API base URL; empty resets to the configured default")


def _reply_or_raise(reply: Dict[str, Any]) -> Dict[str, Any]:
    error = reply.get("error")
    if error is None:
        return reply
    status = 502 if error == RANKING_FAILED_ERROR else 400
    raise HTTPException(status_code=status, detail=error)


@router.post("/api/messages")
async def post_message(message: Dict[str, Any] = Body(...), msg_router: MessageRouter = Depends(get_router)):
    """Dispatch any message kind; errors are returned in the reply body, as on the channel."""
    return await msg_router.dispatch(message)


@router.get("/api/context")
async def get_context(msg_router: MessageRouter = Depends(get_router)):
    reply = await msg_router.dispatch({"type": "GET_CONTEXT"})
    return {"ok": True, **reply}


@router.post("/api/context")
async def save_context(context: ProductContext, msg_router: MessageRouter = Depends(get_router)):
    """Replace the current research context and record it in history."""
    _reply_or_raise(await msg_router.dispatch({"type": "SAVE_CONTEXT", "context": context.to_wire()}))
    return {"ok": True}


@router.delete("/api/context")
async def clear_context(msg_router: MessageRouter = Depends(get_router)):
    await msg_router.dispatch({"type": "CLEAR_CONTEXT"})
    return {"ok": True}


@router.get("/api/context/exists")
async def context_exists(msg_router: MessageRouter = Depends(get_router)):
    reply = await msg_router.dispatch({"type": "CHECK_CONTEXT_EXISTS"})
    return {"ok": True, **reply}


@router.get("/api/history")
async def get_history(msg_router: MessageRouter = Depends(get_router)):
    reply = await msg_router.dispatch({"type": "GET_HISTORY"})
    return {"ok": True, "items": reply["history"]}


@router.delete("/api/history/{entry_id}")
async def delete_history_entry(entry_id: str, msg_router: MessageRouter = Depends(get_router)):
    _reply_or_raise(await msg_router.dispatch({"type": "DELETE_HISTORY_ENTRY", "id": entry_id}))
    return {"ok": True}


@router.post("/api/check-site")
async def check_site(payload: CheckSiteIn, msg_router: MessageRouter = Depends(get_router)):
    """Classify a visited page as skip, no_match or match."""
    reply = await msg_router.dispatch({"type": "CHECK_SITE", **payload.model_dump()})
    return {"ok": True, **_reply_or_raise(reply)}


@router.post("/api/rank-products")
async def rank_products(payload: RankProductsIn, msg_router: MessageRouter = Depends(get_router)):
    message = {"type": "RANK_PRODUCTS", **payload.model_dump(mode="json", by_alias=True)}
    reply = _reply_or_raise(await msg_router.dispatch(message))
    return {"ok": True, **reply}


@router.post("/api/extract")
async def extract_products(payload: ExtractIn, services: Services = Depends(get_services)):
    """Run the extraction cascade over a page snapshot."""
    engine = ProductExtractionEngine(
        PageDocument(payload.html, payload.url), cache_ttl=services.settings.extraction_cache_ttl
    )
    records = engine.extract()
    return {
        "ok": True,
        "found": bool(records),
        "strategy": engine.last_strategy,
        "count": len(records),
        "products": [r.to_wire() for r in records],
    }


@router.get("/api/config/api-url")
async def get_api_url(services: Services = Depends(get_services)):
    return {
        "ok": True,
        "apiUrl": services.client.resolve_base_url(),
        "override": get_api_url_override(services.durable_store),
    }


@router.put("/api/config/api-url")
async def set_api_url(payload: ApiUrlIn, services: Services = Depends(get_services)):
    """Save (or clear) the scoring API base URL override."""
    value = (payload.api_url or "").strip()
    if value and not value.startswith(("http://", "https://")):
        raise HTTPException(status_code=400, detail="API URL must start with http:// or https://")
    if value:
        services.durable_store.set(API_URL_KEY, value)
    else:
        services.durable_store.delete(API_URL_KEY)
    services.classifier.cache.clear()
    return {"ok": True, "apiUrl": services.client.resolve_base_url()}
