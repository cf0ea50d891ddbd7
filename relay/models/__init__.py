"""SQLModel data models."""

from relay.models.api_key import ApiKey, ApiKeyLabel
from relay.models.capture import CaptureSession, CaptureSessionStatus
from relay.models.channel import Channel
from relay.models.message import Message
from relay.models.pairing import PairingCode

__all__ = [
    "ApiKey",
    "ApiKeyLabel",
    "CaptureSession",
    "CaptureSessionStatus",
    "Channel",
    "Message",
    "PairingCode",
]
