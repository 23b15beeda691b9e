"""Storage backends for the scheduling engine."""

from __future__ import annotations

import functools
import logging

from .base import SchedulingStore, WriteBatch, reserved_slot_ids
from .memory import MemoryStore
from .supabase_store import SupabaseStore, get_supabase_client

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def get_store() -> SchedulingStore:
    """Supabase when configured, otherwise a process-wide in-memory store."""

    client = get_supabase_client()
    if client is None:
        logger.info("Supabase not configured - using in-memory scheduling store")
        return MemoryStore()
    return SupabaseStore(client)


__all__ = [
    "MemoryStore",
    "SchedulingStore",
    "SupabaseStore",
    "WriteBatch",
    "get_store",
    "reserved_slot_ids",
]
