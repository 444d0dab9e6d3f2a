from .client import ScoringClient, sanitize_rankings

__all__ = ["ScoringClient", "sanitize_rankings"]
