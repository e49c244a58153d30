"""
Error taxonomy for board reconciliation.

    InvalidMoveRequest — malformed, stale or incomplete drag gesture; aborted silently
    PersistenceError   — a write to the remote store failed; triggers reload + notify
    LoadError          — a read from the remote store failed (including the recovery reload)
"""
from typing import Optional


class InvalidMoveRequest(Exception):
    """Raised when a move cannot be applied to the current snapshot."""
    pass


class PersistenceError(Exception):
    """Raised when the remote store rejects or never receives a write."""

    def __init__(self, message: str, item_id: Optional[int] = None, status: Optional[int] = None):
        super().__init__(message)
        self.item_id = item_id
        self.status = status


class LoadError(Exception):
    """Raised when authoritative state cannot be read from the remote store."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
