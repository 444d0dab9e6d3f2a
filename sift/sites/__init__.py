"""Site relevance: local skip checks and the match classifier."""
