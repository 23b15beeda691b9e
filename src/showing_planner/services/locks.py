"""Per-agent serialization of mutating scheduling runs."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
_agent_locks: Dict[str, threading.Lock] = {}


def _lock_for(agent_id: str) -> threading.Lock:
    with _registry_lock:
        lock = _agent_locks.get(agent_id)
        if lock is None:
            lock = threading.Lock()
            _agent_locks[agent_id] = lock
        return lock


@contextmanager
def agent_run_lock(agent_id: str) -> Iterator[None]:
    """Block until no other run for ``agent_id`` is in progress in this process."""

    lock = _lock_for(agent_id)
    if not lock.acquire(blocking=False):
        logger.info(f"Waiting for in-flight scheduling run of agent {agent_id}")
        lock.acquire()
    try:
        yield
    finally:
        lock.release()
