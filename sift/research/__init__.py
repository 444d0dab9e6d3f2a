from .history import ResearchHistoryStore
from .session import SessionContextHolder

__all__ = ["ResearchHistoryStore", "SessionContextHolder"]
