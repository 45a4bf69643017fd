"""Persistence adapters.

The Redis adapter is imported lazily so the ``redis`` package stays an
optional extra.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .base import Adapter
from .memory import MemoryAdapter


if TYPE_CHECKING:
    from .redis import RedisAdapter


__all__ = ["Adapter", "MemoryAdapter", "RedisAdapter"]


def __getattr__(name: str) -> Any:
    if name == "RedisAdapter":
        from .redis import RedisAdapter

        return RedisAdapter
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
