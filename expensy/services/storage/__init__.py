"""
Storage Services Package

Provides the abstract state slot interface and its implementations.
Currently implements a local JSON file as the backend, but designed to be swappable.
"""

from expensy.services.storage.interface import (
    AccountStateStorage,
    CorruptStateError,
    StorageError,
    migrate_state,
    parse_state_document,
    serialize_state,
)
from expensy.services.storage.local_json import LocalJsonAccountStorage
from expensy.services.storage.memory import InMemoryAccountStorage

__all__ = [
    # Interface
    "AccountStateStorage",
    "migrate_state",
    "parse_state_document",
    "serialize_state",
    # Exceptions
    "CorruptStateError",
    "StorageError",
    # Implementations
    "InMemoryAccountStorage",
    "LocalJsonAccountStorage",
]
