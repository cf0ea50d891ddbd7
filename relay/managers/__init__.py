"""Managers - business logic over the relational and media stores."""

from relay.managers.capture import CaptureSessionManager
from relay.managers.channel import ChannelManager
from relay.managers.mailbox import MailboxManager
from relay.managers.pairing import PairingManager

__all__ = [
    "CaptureSessionManager",
    "ChannelManager",
    "MailboxManager",
    "PairingManager",
]
