"""Fast, local URL checks used before any network call is made."""

import re
from typing import Iterable, Optional
from urllib.parse import urlsplit

from sift.models import TrackedLink

# Hosts that are never worth analyzing: social, reference, health info, code hosting
# and the research conversation itself.
SKIP_HOSTS = (
    "youtube.com",
    "facebook.com",
    "twitter.com",
    "x.com",
    "instagram.com",
    "reddit.com",
    "wikipedia.org",
    "chatgpt.com",
    "openai.com",
    "github.com",
    "linkedin.com",
    "healthline.com",
    "webmd.com",
    "mayoclinic.org",
    "medium.com",
    "stackoverflow.com",
)

# Search result pages: (host pattern, path prefix)
SEARCH_ENGINE_PAGES = (
    (re.compile(r"(^|\.)google\.(com|[a-z]{2}|co\.[a-z]{2}|com\.[a-z]{2})$"), "/search"),
    (re.compile(r"(^|\.)bing\.com$"), "/search"),
    (re.compile(r"(^|\.)duckduckgo\.com$"), "/"),
    (re.compile(r"(^|\.)search\.yahoo\.com$"), "/search"),
)


def extract_domain(url: str) -> Optional[str]:
    """Lowercased hostname without a leading ``www.``; None for unparseable URLs."""
    try:
        host = urlsplit(url.strip()).hostname
    except (AttributeError, ValueError):
        return None
    if not host:
        return None
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def _host_is(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def is_definitely_not_shopping(url: str) -> bool:
    """True for search engines, social networks, reference sites and similar."""
    host = extract_domain(url)
    if host is None:
        return True
    if any(_host_is(host, domain) for domain in SKIP_HOSTS):
        return True
    path = urlsplit(url).path or "/"
    return any(pattern.search(host) and path.startswith(prefix) for pattern, prefix in SEARCH_ENGINE_PAGES)


def domains_match(a: Optional[str], b: Optional[str]) -> bool:
    """Hostnames match when either contains the other (tolerates subdomains)."""
    if not a or not b:
        return False
    return a in b or b in a


def match_tracked_link(url: str, links: Optional[Iterable[TrackedLink]]) -> Optional[TrackedLink]:
    """First tracked link whose domain matches the visited URL."""
    host = extract_domain(url)
    if not host or not links:
        return None
    for link in links:
        domain = (link.domain or extract_domain(link.url) or "").lower()
        if domain.startswith("www."):
            domain = domain[4:]
        if domains_match(host, domain):
            return link
    return None
