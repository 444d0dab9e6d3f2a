"""Session-scoped holder of the current research context."""

import logging
from typing import Optional

from pydantic import ValidationError

from sift.models import ProductContext
from sift.storage import CONTEXT_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class SessionContextHolder:
    """Owns the single :class:`ProductContext` of a session.

    Contexts are frozen models and every read deserializes a fresh copy, so
    other components can only replace the context through :meth:`save`.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def save(self, context: ProductContext) -> None:
        self.store.set(CONTEXT_KEY, context.to_wire())
        logger.info(f"Saved research context: {context.query[:60]}")

    def get(self) -> Optional[ProductContext]:
        raw = self.store.get(CONTEXT_KEY)
        if raw is None:
            return None
        try:
            return ProductContext.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable session context: {e}")
            self.store.delete(CONTEXT_KEY)
            return None

    def clear(self) -> None:
        self.store.delete(CONTEXT_KEY)

    def exists(self) -> bool:
        return self.get() is not None
