"""Capture research context from a conversation page snapshot."""

import logging
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from sift.channel import LocalMessageChannel
from sift.exceptions import HostContextInvalidated
from sift.models import ConversationMessage, ProductContext, TrackedLink
from sift.sites.detection import extract_domain, is_definitely_not_shopping
from sift.text.normalize import (
    content_hash,
    conversation_id_from_path,
    derive_requirements,
    extract_mentioned_products,
    extract_query,
)

logger = logging.getLogger(__name__)

USER_SELECTOR = '[data-message-author-role="user"]'
ASSISTANT_SELECTOR = '[data-message-author-role="assistant"]'
CITATION_SELECTOR = '[data-testid="webpage-citation-pill"] a[href]'
RECENT_MESSAGES = 6
MAX_MESSAGE_CHARS = 500
MAX_TRACKED_LINKS = 20
MIN_QUERY_LENGTH = 3


def _message_text(element: Tag) -> str:
    body = element.select_one(".markdown") or element
    return " ".join(body.get_text(" ", strip=True).split())


def clean_tracked_url(url: str) -> str:
    """Drop ``utm_*`` tracking parameters and the fragment."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if not k.lower().startswith("utm_")]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))


def collect_tracked_links(soup: BeautifulSoup) -> List[TrackedLink]:
    """External links cited by the assistant, deduplicated by domain and path."""
    anchors = soup.select(f'{ASSISTANT_SELECTOR} a[href^="http"]') + soup.select(CITATION_SELECTOR)
    links: List[TrackedLink] = []
    seen = set()
    for anchor in anchors:
        href = str(anchor.get("href") or "")
        domain = extract_domain(href)
        if not domain or is_definitely_not_shopping(href):
            continue
        url = clean_tracked_url(href)
        key = (domain, urlsplit(url).path.rstrip("/"))
        if key in seen:
            continue
        seen.add(key)
        links.append(TrackedLink(url=url, domain=domain, text=anchor.get_text(" ", strip=True)[:100]))
        if len(links) >= MAX_TRACKED_LINKS:
            break
    return links


class ConversationCapture:
    """
    Turns conversation snapshots into a saved :class:`ProductContext`.

    Holds per-page state (last captured digest, current conversation id,
    halted flag) instead of module globals. Unchanged snapshots are not
    re-sent. When the host context is invalidated the capture halts for
    the rest of the page's life.
    """

    def __init__(self, channel: LocalMessageChannel):
        self.channel = channel
        self.conversation_id: Optional[str] = None
        self.last_digest: Optional[str] = None
        self.halted = False

    def build_context(self, html: str, url: str) -> Optional[ProductContext]:
        soup = BeautifulSoup(html or "", "html.parser")
        messages = soup.select("[data-message-author-role]")
        user_texts = [_message_text(m) for m in messages if m.get("data-message-author-role") == "user"]
        assistant_texts = [_message_text(m) for m in messages if m.get("data-message-author-role") == "assistant"]
        user_texts = [t for t in user_texts if t]
        if not user_texts:
            return None

        query = extract_query(user_texts[0])
        if len(query) < MIN_QUERY_LENGTH:
            return None

        recent = [
            ConversationMessage(role=m.get("data-message-author-role"), content=_message_text(m)[:MAX_MESSAGE_CHARS])
            for m in messages
            if m.get("data-message-author-role") in ("user", "assistant") and _message_text(m)
        ][-RECENT_MESSAGES:]
        assistant_text = " ".join(assistant_texts)

        try:
            return ProductContext(
                query=query,
                requirements=derive_requirements(" ".join(user_texts), extra_text=assistant_text),
                source="chatgpt",
                mentioned_products=extract_mentioned_products(assistant_text) or None,
                tracked_links=collect_tracked_links(soup) or None,
                conversation_id=conversation_id_from_path(urlsplit(url).path),
                message_count=len(user_texts) + len(assistant_texts),
                recent_messages=recent or None,
            )
        except ValidationError as e:
            logger.warning(f"Could not build research context: {e}")
            return None

    async def capture(self, html: str, url: str) -> Optional[ProductContext]:
        """Build and save the context for a snapshot. Returns it when something new was saved."""
        if self.halted:
            return None

        conversation_id = conversation_id_from_path(urlsplit(url).path)
        if conversation_id != self.conversation_id:
            self.conversation_id = conversation_id
            self.last_digest = None

        context = self.build_context(html, url)
        if context is None:
            return None

        digest = content_hash(f"{url}\n{context.query}\n{context.message_count}\n{context.recent_messages}")
        if digest == self.last_digest:
            return None

        try:
            reply = await self.channel.send({"type": "SAVE_CONTEXT", "context": context.to_wire()})
        except HostContextInvalidated:
            self.halted = True
            logger.warning("Host context invalidated; capture halted until reload")
            return None

        if "error" in reply:
            logger.warning(f"Saving research context failed: {reply['error']}")
            return None

        self.last_digest = digest
        logger.info(f"Captured research context: {context.query[:60]}")
        return context
