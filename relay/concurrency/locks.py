"""Capture-session-level in-memory locks.

Used by:
- CaptureSessionManager (upload, finalize, delete)
- IdleCaptureSessionGC (auto-finalize)

The manifest lives in the media store and is read-modify-written as a whole
object, so two writers on the same session can lose an update. These locks
serialize that within a single process only. Separate processes (or
replicas) sharing one media store still race; last writer wins.

The registry holds locks weakly: an entry lives only while some coroutine
holds or waits on the lock, so finished and abandoned sessions leave
nothing behind.
"""

from __future__ import annotations

import asyncio
import weakref

# Key: capture session id, Value: asyncio.Lock (weakly referenced)
_capture_session_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
    weakref.WeakValueDictionary()
)


def get_capture_session_lock(session_id: str) -> asyncio.Lock:
    """Get or create the lock for a capture session.

    Callers must keep the returned lock referenced for as long as they use
    it (``async with get_capture_session_lock(...)`` does). No await happens
    between lookup and insert, so the registry needs no lock of its own on a
    single event loop.
    """
    lock = _capture_session_locks.get(session_id)
    if lock is None:
        lock = asyncio.Lock()
        _capture_session_locks[session_id] = lock
    return lock


def get_lock_count() -> int:
    """Get current number of locks (for testing/metrics)."""
    return len(_capture_session_locks)
