"""Pydantic models shared across the research, site matching and extraction layers.

Attributes are snake_case in Python; every model serializes to (and accepts)
the camelCase field names used on the message channel and in storage.
"""

import re
import time
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_TITLE_LENGTH = 200
DEFAULT_RANKING_SUMMARY = "Products ranked by match score."


class WireModel(BaseModel):
    """Base model using camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ResearchEntry(WireModel):
    """One remembered research topic."""

    id: str
    query: str
    product_name: str
    requirements: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    timestamp: float = Field(..., description="Creation time (epoch seconds)")
    last_used: float = Field(..., description="Last match or explicit reuse (epoch seconds)")
    conversation_id: Optional[str] = None

    def summary(self) -> dict:
        """Shape sent to the site analysis service."""
        return {
            "id": self.id,
            "query": self.query,
            "productName": self.product_name,
            "requirements": list(self.requirements),
            "categories": list(self.categories),
        }


class TrackedLink(WireModel):
    """A link seen in a research conversation, remembered as likely relevant."""

    url: str
    domain: str
    text: str = ""


class ConversationMessage(WireModel):
    role: Literal["user", "assistant"]
    content: str


class ProductContext(WireModel):
    """What the user is currently researching. Replaced wholesale, never edited."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    query: str = Field(..., min_length=1)
    requirements: List[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)
    source: Literal["chatgpt", "manual"] = "manual"
    mentioned_products: Optional[List[str]] = None
    tracked_links: Optional[List[TrackedLink]] = None
    conversation_id: Optional[str] = None
    message_count: Optional[int] = None
    recent_messages: Optional[List[ConversationMessage]] = None

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be blank")
        return value


class ProductRecord(WireModel):
    """One candidate product scraped from a page."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    title: str
    price: Optional[float] = Field(default=None, ge=0, description="None when the page shows no price")
    url: str = ""
    description: str = ""
    image_url: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    review_count: Optional[int] = Field(default=None, ge=0)
    in_stock: Optional[bool] = None
    features: List[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _clean_title(cls, value: str) -> str:
        value = re.sub(r"\s+", " ", value or "").strip()[:MAX_TITLE_LENGTH].rstrip()
        if not value:
            raise ValueError("title must not be empty")
        return value


class SiteAnalysis(WireModel):
    """Response of the site analysis service."""

    is_shopping_site: bool = False
    site_category: Optional[str] = None
    matched_research_id: Optional[str] = None
    match_score: float = 0
    match_reason: Optional[str] = None

    @field_validator("match_score", mode="before")
    @classmethod
    def _clamp_score(cls, value) -> float:
        try:
            score = float(value)
        except (TypeError, ValueError):
            return 0.0
        return max(0.0, min(100.0, score))


class ProductRanking(WireModel):
    index: int
    score: float
    reasons: List[str] = Field(default_factory=list)


class RankingResult(WireModel):
    rankings: List[ProductRanking] = Field(default_factory=list)
    summary: str = DEFAULT_RANKING_SUMMARY


class RankedProduct(ProductRecord):
    """A scraped product with the score and reasons it was ranked with."""

    score: float = Field(..., ge=0, le=100)
    reasons: List[str] = Field(default_factory=list)
