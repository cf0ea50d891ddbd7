"""API Key service.

Handles key generation, hashing, verification and bearer-token
resolution to a channel identity.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from relay.models.api_key import ApiKey
from relay.utils.datetime import utcnow

logger = structlog.get_logger()

# Key format: sk-{64 hex chars}
_KEY_PREFIX = "sk-"
_BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved from a bearer key."""

    key_id: str
    channel_id: str
    label: str


class ApiKeyService:
    """Service for API key lifecycle and authentication."""

    @staticmethod
    def generate_key() -> tuple[str, str]:
        """Generate a new API key.

        Returns:
            Tuple of (plaintext, key_hash)
        """
        plaintext = f"{_KEY_PREFIX}{secrets.token_hex(32)}"
        return plaintext, ApiKeyService.hash_key(plaintext)

    @staticmethod
    def hash_key(plaintext: str) -> str:
        """Hash a plaintext key using SHA-256.

        Args:
            plaintext: The plaintext API key

        Returns:
            SHA-256 hex digest
        """
        return hashlib.sha256(plaintext.encode()).hexdigest()

    @staticmethod
    def verify_key(plaintext: str, key_hash: str) -> bool:
        """Verify a plaintext key against a stored hash in constant time."""
        return hmac.compare_digest(ApiKeyService.hash_key(plaintext), key_hash)

    @staticmethod
    def build_record(plaintext: str, channel_id: str, label: str) -> ApiKey:
        """Build (but do not persist) the row for a plaintext key."""
        return ApiKey(
            id=uuid.uuid4().hex,
            channel_id=channel_id,
            key_hash=ApiKeyService.hash_key(plaintext),
            label=label,
            created_at=utcnow(),
        )

    @staticmethod
    def parse_bearer(authorization: str | None) -> str | None:
        """Extract the token from an ``Authorization: Bearer <token>`` header."""
        if not authorization or not authorization.startswith(_BEARER_PREFIX):
            return None
        token = authorization[len(_BEARER_PREFIX):].strip()
        return token or None

    @staticmethod
    async def authenticate(db: AsyncSession, token: str | None) -> AuthContext | None:
        """Resolve a bearer token to a channel identity.

        Returns None (never raises) when the token is missing or matches no
        non-revoked key; callers decide how to report that. No side effects.

        Args:
            db: Database session
            token: Raw bearer secret

        Returns:
            AuthContext or None
        """
        if not token:
            return None

        key_hash = ApiKeyService.hash_key(token)
        result = await db.execute(
            select(ApiKey).where(
                ApiKey.key_hash == key_hash,
                ApiKey.revoked_at.is_(None),
            )
        )
        api_key = result.scalars().first()

        if api_key is None or not ApiKeyService.verify_key(token, api_key.key_hash):
            logger.debug("auth.failed", reason="no_matching_key")
            return None

        logger.debug("auth.success", key_id=api_key.id, channel_id=api_key.channel_id)
        return AuthContext(
            key_id=api_key.id,
            channel_id=api_key.channel_id,
            label=api_key.label,
        )
