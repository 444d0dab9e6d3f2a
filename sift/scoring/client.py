"""Async client for the external site analysis and product ranking service."""

import logging
from typing import Any, Callable, List, Optional

import httpx
from pydantic import ValidationError

from sift.exceptions import CollaboratorError, ConfigurationError, MessageValidationError, NetworkError
from sift.models import (
    DEFAULT_RANKING_SUMMARY,
    ProductContext,
    ProductRanking,
    ProductRecord,
    RankingResult,
    ResearchEntry,
    SiteAnalysis,
)

logger = logging.getLogger(__name__)

MAX_PRODUCTS = 15
MAX_HISTORY = 8
MAX_REASONS = 3
MAX_DESCRIPTION = 300


def sanitize_rankings(payload: Any, product_count: int) -> RankingResult:
    """
    Normalize a ranking response whatever the service sent back.

    Scores are clamped to [0, 100], reasons truncated to three strings,
    rankings whose index does not point into the submitted product list are
    dropped, and the result is sorted by score descending.

    Raises:
        CollaboratorError: If the payload has no ``rankings`` list at all
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("rankings"), list):
        raise CollaboratorError(status_code=200, message="Malformed ranking response", response_text=str(payload)[:1000])

    rankings: List[ProductRanking] = []
    seen = set()
    for item in payload["rankings"]:
        if not isinstance(item, dict):
            continue
        try:
            index = int(item.get("index"))
            score = float(item.get("score"))
        except (TypeError, ValueError):
            continue
        if not 0 <= index < product_count or index in seen or score != score:
            continue
        seen.add(index)
        reasons = item.get("reasons")
        reasons = [str(r) for r in reasons if r][:MAX_REASONS] if isinstance(reasons, list) else []
        rankings.append(ProductRanking(index=index, score=max(0.0, min(100.0, score)), reasons=reasons))

    rankings.sort(key=lambda r: r.score, reverse=True)
    summary = payload.get("summary")
    return RankingResult(
        rankings=rankings,
        summary=summary if isinstance(summary, str) and summary.strip() else DEFAULT_RANKING_SUMMARY,
    )


class ScoringClient:
    """Async client for the scoring service (``/api/analyze-site`` and ``/api/rank-products``)."""

    def __init__(
        self,
        base_url: str = "http://localhost:8787",
        timeout: float = 20.0,
        url_override: Optional[Callable[[], Optional[str]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_products: int = MAX_PRODUCTS,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.url_override = url_override
        self.transport = transport
        self.max_products = max_products

    def resolve_base_url(self) -> str:
        """User-saved API URL when present, otherwise the configured one."""
        base_url = self.base_url
        if self.url_override:
            override = self.url_override()
            if override:
                base_url = override.rstrip("/")
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Scoring API URL must start with http:// or https://: {base_url!r}")
        return base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "Sift/1.0",
        }

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        url = f"{self.resolve_base_url()}{path}"
        logger.debug(f"Scoring API request: {url}")

        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers(),
            transport=self.transport,
        ) as client:
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                error_text = e.response.text[:1000] if e.response is not None else ""
                status = e.response.status_code if e.response is not None else 0
                logger.error(f"Scoring API error {status}: URL={url}, Response={error_text}")
                raise CollaboratorError(
                    status_code=status,
                    message=f"API returned {status}",
                    response_text=error_text,
                ) from e
            except httpx.RequestError as e:
                logger.error(f"Network error connecting to scoring API: {e}")
                raise NetworkError(f"Network error connecting to scoring API: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise CollaboratorError(
                status_code=response.status_code,
                message="Response was not valid JSON",
                response_text=response.text[:1000],
            ) from e

    async def analyze_site(
        self,
        url: str,
        title: str,
        history: List[ResearchEntry],
        description: Optional[str] = None,
    ) -> SiteAnalysis:
        """
        Ask whether a page is a shopping site and which research entry it fits.

        Args:
            url: Visited page URL
            title: Page title
            history: Research entries, most recent first (only the first 8 are sent)
            description: Optional meta description

        Raises:
            CollaboratorError: On non-2xx or malformed responses
            NetworkError: On connection errors
        """
        payload: dict[str, Any] = {
            "url": url,
            "title": title,
            "researchHistory": [entry.summary() for entry in history[:MAX_HISTORY]],
        }
        if description:
            payload["description"] = description[:MAX_DESCRIPTION]

        data = await self._post("/api/analyze-site", payload)
        try:
            return SiteAnalysis.model_validate(data)
        except ValidationError as e:
            raise CollaboratorError(status_code=200, message="Malformed site analysis", response_text=str(data)[:1000]) from e

    async def rank_products(self, context: ProductContext, products: List[ProductRecord]) -> RankingResult:
        """
        Score products against the research context.

        Only the first ``max_products`` products are submitted; ranking indices
        refer to positions in that submitted list.

        Raises:
            MessageValidationError: If there is nothing to rank
            CollaboratorError: On non-2xx or malformed responses
            NetworkError: On connection errors
        """
        submitted = products[: self.max_products]
        if not submitted:
            raise MessageValidationError("No products to rank")

        ranking_context: dict[str, Any] = {"query": context.query, "requirements": list(context.requirements)}
        if context.mentioned_products:
            ranking_context["mentionedProducts"] = list(context.mentioned_products)
        if context.recent_messages:
            ranking_context["recentMessages"] = [m.to_wire() for m in context.recent_messages]

        data = await self._post(
            "/api/rank-products",
            {"context": ranking_context, "products": [p.to_wire() for p in submitted]},
        )
        result = sanitize_rankings(data, len(submitted))
        logger.info(f"Ranked {len(result.rankings)} of {len(submitted)} products")
        return result
