"""Stage definitions and activation."""

from .service import Stage, StageService

__all__ = [
    "Stage",
    "StageService",
]
