"""PairingManager - issues and redeems single-use pairing codes.

The relay is only a short-lived dead-drop here: the agent deposits an
opaque ``encrypted_channel_key`` and the relay pre-mints a client key.
Establishing the shared secret happens entirely above the relay.
"""

from __future__ import annotations

import secrets
from datetime import timedelta

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from relay.config import PairingConfig, get_settings
from relay.errors import ForbiddenError, GoneError, InternalError, InvalidRequestError, NotFoundError
from relay.models.api_key import ApiKeyLabel
from relay.models.pairing import PairingCode
from relay.services.api_key import ApiKeyService, AuthContext
from relay.utils.datetime import utcnow

logger = structlog.get_logger()

_CODE_DIGITS = 6


class PairingManager:
    """Manages pairing code issue and redemption."""

    def __init__(self, db_session: AsyncSession, config: PairingConfig | None = None) -> None:
        self._db = db_session
        self._config = config or get_settings().pairing
        self._log = logger.bind(manager="pairing")

    @staticmethod
    def generate_code() -> str:
        """Draw a uniformly random zero-padded 6-digit code."""
        return f"{secrets.randbelow(10**_CODE_DIGITS):0{_CODE_DIGITS}d}"

    async def _allocate_code(self) -> str:
        """Pick a code that does not collide with a live pairing code.

        A dead row (used or expired) holding the same code is replaced.
        """
        now = utcnow()
        for _ in range(self._config.code_generation_attempts):
            code = self.generate_code()
            existing = await self._db.get(PairingCode, code, populate_existing=True)
            if existing is None:
                return code
            if existing.used or existing.expires_at < now:
                await self._db.delete(existing)
                await self._db.flush()
                return code
            self._log.debug("pairing.code_collision", code_prefix=code[:2])

        raise InternalError("Could not allocate a unique pairing code")

    async def create_code(
        self,
        auth: AuthContext,
        channel_id: str,
        encrypted_channel_key: str | None,
    ) -> PairingCode:
        """Issue a pairing code for the caller's own channel.

        Args:
            auth: Caller identity
            channel_id: Channel the code should pair into
            encrypted_channel_key: Opaque blob returned verbatim on redemption

        Returns:
            The persisted pairing code

        Raises:
            ForbiddenError: If channel_id is not the caller's channel
            InvalidRequestError: If encrypted_channel_key is missing
        """
        if auth.channel_id != channel_id:
            raise ForbiddenError()

        if not encrypted_channel_key:
            raise InvalidRequestError("encryptedChannelKey is required")

        code = await self._allocate_code()
        client_key, _ = ApiKeyService.generate_key()
        now = utcnow()

        pairing_code = PairingCode(
            code=code,
            channel_id=channel_id,
            api_key=client_key,
            encrypted_channel_key=encrypted_channel_key,
            expires_at=now + timedelta(seconds=self._config.code_ttl_seconds),
            used=False,
            created_at=now,
        )
        self._db.add(pairing_code)
        await self._db.commit()

        self._log.info(
            "pairing.create",
            channel_id=channel_id,
            expires_at=pairing_code.expires_at.isoformat(),
        )
        return pairing_code

    async def redeem(self, code: str | None, label: str | None = None) -> PairingCode:
        """Redeem a pairing code into a new client key.

        Flipping the ``used`` latch and inserting the new key commit as one
        unit. The latch flip is conditional on the code still being unused
        and unexpired, so of any number of concurrent redemptions exactly
        one succeeds.

        Args:
            code: The 6-digit code
            label: Label for the new key (default "client")

        Returns:
            The pairing code as it was before redemption (still carrying the
            plaintext client key to hand out)

        Raises:
            InvalidRequestError: If code is missing
            NotFoundError: If the code does not exist
            GoneError: If the code was already used or has expired
        """
        if not code:
            raise InvalidRequestError("code is required")

        pairing_code = await self._db.get(PairingCode, code)
        if pairing_code is None:
            raise NotFoundError("Invalid pairing code")
        if pairing_code.used:
            raise GoneError("Pairing code already used")

        now = utcnow()
        if pairing_code.expires_at < now:
            raise GoneError("Pairing code expired")

        client_key = pairing_code.api_key
        channel_id = pairing_code.channel_id

        # Latch + scrub the stored plaintext; loses any race cleanly
        result = await self._db.execute(
            update(PairingCode)
            .where(
                PairingCode.code == code,
                PairingCode.used == False,  # noqa: E712
                PairingCode.expires_at >= now,
            )
            .values(used=True, api_key="")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self._db.rollback()
            self._log.info("pairing.redeem.lost_race", channel_id=channel_id)
            raise GoneError("Pairing code already used")

        api_key = ApiKeyService.build_record(
            client_key,
            channel_id,
            label or ApiKeyLabel.CLIENT,
        )
        self._db.add(api_key)
        await self._db.commit()

        self._log.info(
            "pairing.redeem",
            channel_id=channel_id,
            key_id=api_key.id,
            label=api_key.label,
        )
        return pairing_code
