"""
Repository package for the webinar sync feature.
"""

from .gateway import (
    PersistenceError,
    PersistenceGateway,
    PostgresSyncGateway,
    StoreUnavailableError,
)

__all__ = [
    "PersistenceError",
    "PersistenceGateway",
    "PostgresSyncGateway",
    "StoreUnavailableError",
]
