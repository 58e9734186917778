"""
Custom exceptions for the colony indexer.

Provides a small hierarchy with HTTP-like error codes so the run loop can
tell transport hiccups apart from missing entities and bad configuration.
"""
from typing import Optional


class IndexerError(Exception):
    """Base exception for all indexer errors."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.retryable = retryable

    def to_dict(self) -> dict:
        """Convert to dictionary for structured log output."""
        return {
            "error_code": self.code,
            "error_message": self.message,
            "retryable": self.retryable,
        }


# ============================================
# Configuration
# ============================================

class ConfigurationError(IndexerError):
    """Missing or invalid required configuration. Always fatal."""

    def __init__(self, message: str = "Invalid configuration"):
        super().__init__(message, code=400, retryable=False)


# ============================================
# Not found
# ============================================

class NotFoundError(IndexerError):
    """404 - Requested entity doesn't exist upstream."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, code=404, retryable=False)


class UserNotFoundError(NotFoundError):
    """User profile absent on the profile server."""

    def __init__(self, address: str = ""):
        message = f"User with address {address} was not found!" if address else "User not found"
        super().__init__(message)
        self.address = address


class ColonyNotFoundError(NotFoundError):
    """Colony absent on the subgraph or profile server."""

    def __init__(self, address: str = ""):
        message = f"Colony with address {address} was not found!" if address else "Colony not found"
        super().__init__(message)
        self.address = address


# ============================================
# Upstream / transport
# ============================================

class TransportError(IndexerError):
    """502 - A remote gateway failed or returned garbage."""

    def __init__(self, message: str = "A remote gateway is unavailable.", gateway: str = ""):
        self.gateway = gateway
        full_message = f"[{gateway}] {message}" if gateway else message
        super().__init__(full_message, code=502, retryable=True)


class PaginationError(TransportError):
    """A page fetch failed mid-sweep."""

    def __init__(self, message: str = "Page fetch failed", query_name: Optional[str] = None):
        self.query_name = query_name
        super().__init__(message, gateway=query_name or "paginator")


class PersistenceError(IndexerError):
    """A single upsert into the backing store failed."""

    def __init__(self, message: str = "Persistence call failed", entity_type: str = ""):
        self.entity_type = entity_type
        full_message = f"{entity_type}: {message}" if entity_type else message
        super().__init__(full_message, code=500, retryable=True)
