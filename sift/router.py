"""
Inbound message surface.

Requests are a closed set of kinds discriminated on ``type``. Each kind is
validated at the boundary; unknown kinds and malformed payloads are
rejected with a specific, user-facing ``{"error": ...}`` reply, and every
handler is bounded by a timeout so nothing blocks the channel.
"""

import asyncio
import json
import logging
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from sift.exceptions import CollaboratorError, ConfigurationError, MessageValidationError, NetworkError
from sift.models import ProductContext, ProductRecord, WireModel
from sift.research.history import ResearchHistoryStore
from sift.research.session import SessionContextHolder
from sift.scoring.client import ScoringClient
from sift.sites.classifier import SiteRelevanceClassifier

logger = logging.getLogger(__name__)

NO_CONTEXT_ERROR = "No context available. Research a product in ChatGPT first."
RANKING_FAILED_ERROR = "Failed to analyze products. Please try again."
MESSAGE_TIMEOUT = 30.0
MAX_MESSAGE_BYTES = 512 * 1024


class SaveContextMessage(WireModel):
    type: Literal["SAVE_CONTEXT"]
    context: ProductContext


class GetContextMessage(WireModel):
    type: Literal["GET_CONTEXT"]


class ClearContextMessage(WireModel):
    type: Literal["CLEAR_CONTEXT"]


class CheckContextExistsMessage(WireModel):
    type: Literal["CHECK_CONTEXT_EXISTS"]


class RankProductsMessage(WireModel):
    type: Literal["RANK_PRODUCTS"]
    products: List[ProductRecord]
    research_id: Optional[str] = Field(default=None, description="History entry to rank against when no session context exists")


class GetHistoryMessage(WireModel):
    type: Literal["GET_HISTORY"]


class DeleteHistoryEntryMessage(WireModel):
    type: Literal["DELETE_HISTORY_ENTRY"]
    id: str = Field(..., min_length=1)


class CheckSiteMessage(WireModel):
    type: Literal["CHECK_SITE"]
    url: str = Field(..., min_length=1)
    title: str = ""
    description: Optional[str] = None


class PingMessage(WireModel):
    type: Literal["PING"]


InboundMessage = Annotated[
    Union[
        SaveContextMessage,
        GetContextMessage,
        ClearContextMessage,
        CheckContextExistsMessage,
        RankProductsMessage,
        GetHistoryMessage,
        DeleteHistoryEntryMessage,
        CheckSiteMessage,
        PingMessage,
    ],
    Field(discriminator="type"),
]

MESSAGE_TYPES = frozenset(
    {
        "SAVE_CONTEXT",
        "GET_CONTEXT",
        "CLEAR_CONTEXT",
        "CHECK_CONTEXT_EXISTS",
        "RANK_PRODUCTS",
        "GET_HISTORY",
        "DELETE_HISTORY_ENTRY",
        "CHECK_SITE",
        "PING",
    }
)

_message_adapter: TypeAdapter = TypeAdapter(InboundMessage)


def describe_validation_error(message_type: str, error: ValidationError) -> str:
    first = error.errors()[0]
    # Drop the discriminator tag pydantic prepends to the location.
    location = ".".join(str(part) for part in first["loc"] if part != message_type)
    detail = f"{location}: {first['msg']}" if location else first["msg"]
    return f"Invalid {message_type} message: {detail}"


class MessageRouter:
    """Dispatches inbound messages to the session, history, classifier and scoring client."""

    def __init__(
        self,
        session: SessionContextHolder,
        history: ResearchHistoryStore,
        client: ScoringClient,
        classifier: SiteRelevanceClassifier,
        timeout: float = MESSAGE_TIMEOUT,
        max_message_bytes: int = MAX_MESSAGE_BYTES,
    ):
        self.session = session
        self.history = history
        self.client = client
        self.classifier = classifier
        self.timeout = timeout
        self.max_message_bytes = max_message_bytes
        self._handlers: Dict[str, Callable[[Any], Awaitable[Dict[str, Any]]]] = {
            "SAVE_CONTEXT": self._save_context,
            "GET_CONTEXT": self._get_context,
            "CLEAR_CONTEXT": self._clear_context,
            "CHECK_CONTEXT_EXISTS": self._check_context_exists,
            "RANK_PRODUCTS": self._rank_products,
            "GET_HISTORY": self._get_history,
            "DELETE_HISTORY_ENTRY": self._delete_history_entry,
            "CHECK_SITE": self._check_site,
            "PING": self._ping,
        }

    def parse(self, message: Any):
        """Validate a raw message into one of the known kinds.

        Raises:
            MessageValidationError: Unknown kind, oversized or malformed payload
        """
        if not isinstance(message, dict):
            raise MessageValidationError("Message must be a JSON object")
        message_type = message.get("type")
        if not isinstance(message_type, str) or not message_type:
            raise MessageValidationError("Message type is required")
        if message_type not in MESSAGE_TYPES:
            raise MessageValidationError(f"Unknown message type: {message_type}")

        size = len(json.dumps(message, default=str).encode("utf-8"))
        if size > self.max_message_bytes:
            raise MessageValidationError(f"Message too large ({size} bytes, limit {self.max_message_bytes})")

        try:
            return _message_adapter.validate_python(message)
        except ValidationError as e:
            raise MessageValidationError(describe_validation_error(message_type, e)) from e

    async def dispatch(self, message: Any) -> Dict[str, Any]:
        """Handle one message. Always resolves to a reply dict; failures become ``{"error": ...}``."""
        try:
            parsed = self.parse(message)
        except MessageValidationError as e:
            logger.warning(f"Rejected message: {e.message}")
            return {"error": e.message}

        handler = self._handlers[parsed.type]
        try:
            return await asyncio.wait_for(handler(parsed), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{parsed.type} handler timed out after {self.timeout}s")
            return {"error": f"{parsed.type} timed out. Please try again."}
        except MessageValidationError as e:
            return {"error": e.message}

    async def _save_context(self, message: SaveContextMessage) -> Dict[str, Any]:
        self.session.save(message.context)
        # History persistence must not affect the reply; upsert logs its own failures.
        self.history.upsert(message.context)
        return {"success": True}

    async def _get_context(self, message: GetContextMessage) -> Dict[str, Any]:
        context = self.session.get()
        return {"context": context.to_wire() if context else None}

    async def _clear_context(self, message: ClearContextMessage) -> Dict[str, Any]:
        self.session.clear()
        return {"success": True}

    async def _check_context_exists(self, message: CheckContextExistsMessage) -> Dict[str, Any]:
        context = self.session.get()
        return {"exists": context is not None, "context": context.to_wire() if context else None}

    def _context_for_ranking(self, research_id: Optional[str]) -> Optional[ProductContext]:
        context = self.session.get()
        if context is not None or not research_id:
            return context
        entry = self.history.touch(research_id)
        if entry is None:
            return None
        return ProductContext(
            query=entry.query,
            requirements=entry.requirements,
            timestamp=entry.timestamp,
            source="manual",
            conversation_id=entry.conversation_id,
        )

    async def _rank_products(self, message: RankProductsMessage) -> Dict[str, Any]:
        if not message.products:
            raise MessageValidationError("No products to rank")
        context = self._context_for_ranking(message.research_id)
        if context is None:
            return {"error": NO_CONTEXT_ERROR}

        try:
            result = await self.client.rank_products(context, message.products)
        except (CollaboratorError, ConfigurationError, NetworkError) as e:
            logger.error(f"Ranking failed: {e}")
            return {"error": RANKING_FAILED_ERROR}
        return result.to_wire()

    async def _get_history(self, message: GetHistoryMessage) -> Dict[str, Any]:
        return {"history": [entry.to_wire() for entry in self.history.list()]}

    async def _delete_history_entry(self, message: DeleteHistoryEntryMessage) -> Dict[str, Any]:
        self.history.delete(message.id)
        return {"success": True}

    async def _check_site(self, message: CheckSiteMessage) -> Dict[str, Any]:
        classification = await self.classifier.classify(message.url, message.title, message.description)
        return classification.model_dump(mode="json", by_alias=True)

    async def _ping(self, message: PingMessage) -> Dict[str, Any]:
        return {"ok": True}
