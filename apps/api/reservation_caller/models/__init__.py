"""Expose ORM models."""
from .base import Base
from .call import Call

__all__ = [
    "Base",
    "Call",
]
