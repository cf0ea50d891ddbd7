"""Finalize authorization grants.

Finalize accepts two kinds of credential. The HTTP layer resolves the
request into exactly one grant before the manager sees it.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OwnerGrant:
    """Bearer key holder acting on a session of their own channel."""

    channel_id: str


@dataclass(frozen=True)
class CapabilityGrant:
    """Holder of a session's finalize token (no channel identity)."""

    token: str


FinalizeGrant = OwnerGrant | CapabilityGrant
