"""In-process message channel between page-side code and the router."""

import logging
from typing import Any, Dict

from sift.exceptions import HostContextInvalidated
from sift.router import MessageRouter

logger = logging.getLogger(__name__)

RELOAD_MESSAGE = "Extension context invalidated. Reload the page to continue."


class LocalMessageChannel:
    """Request/response channel bound to one router.

    Once :meth:`invalidate` is called (the host runtime was torn down),
    every ``send`` raises :class:`HostContextInvalidated`; callers must
    stop and wait for a page reload rather than retry.
    """

    def __init__(self, router: MessageRouter):
        self.router = router
        self._valid = True

    @property
    def is_valid(self) -> bool:
        return self._valid

    def invalidate(self) -> None:
        if self._valid:
            logger.warning("Message channel invalidated")
        self._valid = False

    async def send(self, message: Dict[str, Any]) -> Dict[str, Any]:
        if not self._valid:
            raise HostContextInvalidated(RELOAD_MESSAGE)
        return await self.router.dispatch(message)
