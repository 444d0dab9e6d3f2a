"""
Pure text helpers that turn captured conversation text into research metadata.

Everything here is deterministic: history deduplication and site matching
depend on the same input always producing the same product name,
requirements, keywords and categories.
"""

import hashlib
import re
from typing import Iterable, List, Optional

PLACEHOLDER_NAME = "Product Research"
MAX_NAME_LENGTH = 40
MAX_REQUIREMENTS = 8
MAX_KEYWORDS = 20
MAX_QUERY_LENGTH = 100
MAX_MENTIONED_PRODUCTS = 10

_ACTION_PREFIX = re.compile(r"^(list|rank|compare|show|give|tell|find|search|get|help|me|and)\s+", re.I)
_QUESTION_PREFIX = re.compile(
    r"^(what|which|can you|please|i need|i want|looking for|find me|recommend|best|top|good|the)\s+", re.I
)
_QUERY_PREFIX = re.compile(r"^(what|which|can you|please|i need|i want|looking for|find me|recommend|help me find)\s+", re.I)
_TRAILING_QUESTION = re.compile(r"\?+$")

_TRAILING_QUALIFIERS = (
    re.compile(r"\s+(for\s+(men|women|kids|home|office|outdoor|indoor|me|us))\b.*", re.I | re.S),
    re.compile(r"\s+(under|less than|around|about)\s*\$?\d+.*", re.I | re.S),
    re.compile(r"\s+(with|without|no|that has|that have)\s+.*", re.I | re.S),
    re.compile(r"\s*,.*$", re.S),
)

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "that", "this", "from", "have", "are",
        "was", "were", "been", "being", "best", "good", "great", "need", "want", "looking",
        "you", "can", "what", "which", "please", "recommend", "some", "any", "about",
        "under", "into", "your", "they", "them", "their", "also", "just", "very", "top",
    }
)

# Words that follow "no"/"without"/"with" without naming an actual feature or material.
_FILLER_WORDS = frozenset(
    {
        "the", "a", "an", "more", "less", "need", "one", "way", "problem", "and", "or",
        "no", "any", "some", "budget", "matter", "longer", "idea", "doubt", "price", "my",
        "it", "that", "this", "your", "than", "other", "extra", "issue", "issues", "limit",
    }
)

_BUDGET = re.compile(r"\b(?:under|less than|budget(?:\s+of)?|max|around)\s*\$?\s*(\d[\d,]*)", re.I)
_EXCLUSION = re.compile(r"\b(?:no|without)\s+([a-z][a-z-]*)")
_INCLUSION = re.compile(
    r"\b(?:with|must[- ]have|needs to have|need to have|needs)\s+(?:an?\s+|the\s+)?([a-z][a-z-]*)(?:\s+([a-z][a-z-]*))?"
)

QUALITY_KEYWORDS = (
    "durable",
    "reliable",
    "quiet",
    "silent",
    "fast",
    "lightweight",
    "portable",
    "compact",
    "waterproof",
    "wireless",
    "bluetooth",
    "premium",
    "professional",
    "eco-friendly",
    "organic",
    "natural",
    "stainless steel",
    "heavy duty",
    "easy to clean",
    "easy to use",
    "beginner",
    "long lasting",
    "efficient",
)
_QUALITY_PATTERNS = tuple((kw, re.compile(r"\b" + re.escape(kw) + r"\b")) for kw in QUALITY_KEYWORDS)

# Ordered keyword-to-category table; output order follows this order.
CATEGORY_KEYWORDS = (
    ("electronics", ("laptop", "phone", "computer", "tablet", "monitor", "tv", "camera", "charger")),
    ("kitchen", ("blender", "coffee", "toaster", "espresso", "cookware", "knife", "air fryer", "kettle")),
    ("fitness", ("treadmill", "weights", "yoga", "dumbbell", "exercise", "bike trainer")),
    ("water-filter", ("water filter", "shower filter", "filtration", "reverse osmosis")),
    ("audio", ("headphone", "earbud", "speaker", "soundbar", "microphone")),
    ("home", ("vacuum", "mattress", "pillow", "furniture", "lamp", "purifier", "humidifier")),
    ("outdoor", ("tent", "backpack", "hiking", "camping", "grill", "sleeping bag")),
    ("apparel", ("shoes", "sneaker", "jacket", "boots", "shirt", "dress", "jeans")),
    ("beauty", ("skincare", "shampoo", "moisturizer", "sunscreen", "makeup", "serum")),
    ("baby", ("stroller", "crib", "diaper", "car seat", "baby")),
    ("pets", ("dog", "cat food", "litter", "pet")),
    ("tools", ("drill", "saw", "wrench", "screwdriver", "toolbox")),
    ("gaming", ("console", "gaming", "controller", "keyboard", "mouse")),
)

_MENTION_PATTERNS = (
    re.compile(
        r"(?:recommend|suggest|consider|try|look at|check out)\s+(?:the\s+)?"
        r"([A-Z][A-Za-z0-9 ]+?)(?:\s*[-–—]|\s*\(|\.|,|$)",
        re.M,
    ),
    re.compile(r"([A-Z][A-Za-z0-9]+(?:\s+[A-Z][A-Za-z0-9]+){1,3})(?:\s+(?:is|are|has|offers|provides|features))"),
)

_CONVERSATION_PATH = re.compile(r"/c/([a-zA-Z0-9-]+)")


def _strip_prefixes(text: str, pattern: re.Pattern, passes: int = 2) -> str:
    for _ in range(passes):
        text = pattern.sub("", text, count=1)
    return text


def _title_case(text: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in text.lower().split())


def _truncate_at_word(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if text[limit] == " ":
        return text[:limit].rstrip()
    head = text[:limit]
    if " " not in head:
        return ""
    return head.rsplit(" ", 1)[0].rstrip()


def derive_product_name(query: str) -> str:
    """Reduce a free-form research query to a short, title-cased product name.

    >>> derive_product_name("list and rank top water filters")
    'Rank Top Water Filters'
    >>> derive_product_name("headphones under $100")
    'Headphones'
    """
    cleaned = (query or "").strip()
    cleaned = _strip_prefixes(cleaned, _ACTION_PREFIX)
    cleaned = _strip_prefixes(cleaned, _QUESTION_PREFIX)
    cleaned = _TRAILING_QUESTION.sub("", cleaned)
    for pattern in _TRAILING_QUALIFIERS:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip(" \t\n.!?:;-")

    name = _truncate_at_word(_title_case(cleaned), MAX_NAME_LENGTH)
    return name or PLACEHOLDER_NAME


def _dedupe(items: Iterable[str], limit: Optional[int] = None) -> List[str]:
    seen = set()
    result: List[str] = []
    for item in items:
        key = item.lower()
        if not item or key in seen:
            continue
        seen.add(key)
        result.append(item)
        if limit is not None and len(result) >= limit:
            break
    return result


def derive_requirements(text: str, extra_text: str = "") -> List[str]:
    """
    Pull requirement phrases out of captured text.

    Priority order: budget ceiling, exclusions ("no X" / "without X"),
    inclusions ("with X", "must-have X", "needs X"), then the fixed quality
    vocabulary. ``extra_text`` (typically the rest of the conversation) is
    scanned for exclusions and quality words as well.

    Returns at most 8 entries, deduplicated case-insensitively in first-seen order.
    """
    primary = (text or "").lower()
    combined = f"{primary}\n{(extra_text or '').lower()}"
    found: List[str] = []

    budget = _BUDGET.search(primary) or _BUDGET.search(combined)
    if budget:
        found.append(f"under ${budget.group(1).replace(',', '')}")

    for match in _EXCLUSION.finditer(combined):
        item = match.group(1).strip("-")
        if item and item not in _FILLER_WORDS:
            found.append(f"no {item}")

    for match in _INCLUSION.finditer(primary):
        first, second = match.group(1).strip("-"), (match.group(2) or "").strip("-")
        if not first or first in _FILLER_WORDS or first in STOP_WORDS:
            continue
        phrase = first
        if second and second not in _FILLER_WORDS and second not in STOP_WORDS:
            phrase = f"{first} {second}"
        if any(phrase == kw or first == kw for kw in QUALITY_KEYWORDS):
            continue
        found.append(f"with {phrase}")

    for keyword, pattern in _QUALITY_PATTERNS:
        if pattern.search(combined):
            found.append(keyword)

    return _dedupe(found, MAX_REQUIREMENTS)


def derive_keywords(text: str) -> List[str]:
    """Significant lowercase words (3+ letters, stop words removed), capped at 20."""
    words = (w for w in re.findall(r"\b[a-z]{3,}\b", (text or "").lower()) if w not in STOP_WORDS)
    return _dedupe(words, MAX_KEYWORDS)


def derive_categories(text: str) -> List[str]:
    """Category tags whose keywords occur as substrings of ``text``, in table order."""
    lowered = (text or "").lower()
    return [name for name, keywords in CATEGORY_KEYWORDS if any(kw in lowered for kw in keywords)]


def extract_query(message: str) -> str:
    """Trim conversational lead-ins from the first user message."""
    cleaned = _QUERY_PREFIX.sub("", (message or "").strip(), count=1)
    cleaned = _TRAILING_QUESTION.sub("", cleaned)
    return cleaned[:MAX_QUERY_LENGTH].strip()


def conversation_id_from_path(path: str) -> Optional[str]:
    """Conversation id from a ``/c/<id>`` URL path."""
    match = _CONVERSATION_PATH.search(path or "")
    return match.group(1) if match else None


def extract_mentioned_products(text: str) -> List[str]:
    """Product names an assistant reply recommends or describes."""
    names: List[str] = []
    for pattern in _MENTION_PATTERNS:
        for match in pattern.finditer(text or ""):
            name = re.sub(r"^(?:The|A|An)\s+", "", match.group(1).strip())
            if 3 < len(name) < 50:
                names.append(name)
    return _dedupe(names, MAX_MENTIONED_PRODUCTS)


def content_hash(text: str) -> str:
    """Short digest used only to detect that captured text changed."""
    return hashlib.sha1((text or "").encode("utf-8")).hexdigest()[:16]
