"""Concurrency utilities for Relay."""

from relay.concurrency.locks import get_capture_session_lock

__all__ = ["get_capture_session_lock"]
