"""A parsed snapshot of a web page."""

from typing import List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag


class PageDocument:
    """HTML snapshot plus the URL it was loaded from."""

    def __init__(self, html: str, url: str):
        self.html = html or ""
        self.url = url
        self.soup = BeautifulSoup(self.html, "html.parser")

    @property
    def hostname(self) -> str:
        host = (urlsplit(self.url).hostname or "").lower()
        return host[4:] if host.startswith("www.") else host

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    @property
    def title(self) -> str:
        tag = self.soup.find("title")
        return tag.get_text(" ", strip=True) if tag else ""

    @property
    def description(self) -> Optional[str]:
        meta = self.soup.find("meta", attrs={"name": "description"})
        content = meta.get("content") if meta else None
        return content.strip() if isinstance(content, str) and content.strip() else None

    def select(self, selector: str, limit: int = 0) -> List[Tag]:
        return self.soup.select(selector, limit=limit)

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def absolute(self, href: Optional[str]) -> str:
        """Resolve ``href`` against the page URL."""
        if not href:
            return ""
        return urljoin(self.url, href.strip())
