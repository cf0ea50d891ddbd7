"""Sweep task implementations."""

from relay.services.gc.tasks.expired_pairing_code import ExpiredPairingCodeGC
from relay.services.gc.tasks.idle_capture_session import IdleCaptureSessionGC

__all__ = ["ExpiredPairingCodeGC", "IdleCaptureSessionGC"]
