"""
Stage store collaborators.

Provides the read boundary consumed by the consensus algorithms, an
in-memory implementation and a retrying wrapper.
"""

from .base import (
    StageConflictError,
    StageNotFoundError,
    StageStore,
    StoreError,
    StoreReadError,
)
from .memory import InMemoryStageStore
from .retrying import RetryingStageStore

__all__ = [
    # Base
    "StageStore",
    "StoreError",
    "StageNotFoundError",
    "StageConflictError",
    "StoreReadError",
    # Stores
    "InMemoryStageStore",
    "RetryingStageStore",
]
