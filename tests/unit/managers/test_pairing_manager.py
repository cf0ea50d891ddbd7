"""Unit tests for PairingManager.

Covers single use (including a redemption that lost the race after
reading the code), expiry, cross-channel issue and code allocation.
"""

from __future__ import annotations

import re
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from relay.config import PairingConfig
from relay.errors import ForbiddenError, GoneError, InternalError, InvalidRequestError, NotFoundError
from relay.managers.channel import ChannelManager
from relay.managers.pairing import PairingManager
from relay.models.api_key import ApiKey
from relay.models.pairing import PairingCode
from relay.services.api_key import ApiKeyService, AuthContext
from relay.utils.datetime import utcnow


@pytest.fixture
def pairing_config() -> PairingConfig:
    return PairingConfig(code_ttl_seconds=600)


@pytest.fixture
async def agent(db_session: AsyncSession) -> AuthContext:
    _, api_key = await ChannelManager(db_session).create()
    auth = await ApiKeyService.authenticate(db_session, api_key)
    assert auth is not None
    return auth


@pytest.fixture
def pairing_manager(db_session: AsyncSession, pairing_config: PairingConfig) -> PairingManager:
    return PairingManager(db_session, pairing_config)


class TestCreateCode:
    async def test_code_shape_and_expiry(self, pairing_manager: PairingManager, agent: AuthContext):
        before = utcnow()
        pairing_code = await pairing_manager.create_code(agent, agent.channel_id, "ENC")

        assert re.fullmatch(r"\d{6}", pairing_code.code)
        assert pairing_code.used is False
        assert pairing_code.api_key.startswith("sk-")
        assert before + timedelta(seconds=600) <= pairing_code.expires_at
        assert pairing_code.expires_at <= utcnow() + timedelta(seconds=600)

    async def test_other_channel_is_forbidden(
        self, pairing_manager: PairingManager, agent: AuthContext, db_session: AsyncSession
    ):
        other, _ = await ChannelManager(db_session).create()

        with pytest.raises(ForbiddenError):
            await pairing_manager.create_code(agent, other.id, "ENC")

    @pytest.mark.parametrize("blob", [None, ""])
    async def test_missing_encrypted_key(
        self, pairing_manager: PairingManager, agent: AuthContext, blob
    ):
        with pytest.raises(InvalidRequestError):
            await pairing_manager.create_code(agent, agent.channel_id, blob)

    async def test_live_collision_is_retried(
        self, pairing_manager: PairingManager, agent: AuthContext
    ):
        first = await pairing_manager.create_code(agent, agent.channel_id, "ENC")

        with patch.object(
            PairingManager, "generate_code", side_effect=[first.code, "654321"]
        ):
            second = await pairing_manager.create_code(agent, agent.channel_id, "ENC")

        assert second.code == "654321"

    async def test_dead_code_is_replaced(
        self, pairing_manager: PairingManager, agent: AuthContext, db_session: AsyncSession
    ):
        first = await pairing_manager.create_code(agent, agent.channel_id, "OLD")
        await pairing_manager.redeem(first.code)

        with patch.object(PairingManager, "generate_code", return_value=first.code):
            second = await pairing_manager.create_code(agent, agent.channel_id, "NEW")

        assert second.code == first.code
        row = await db_session.get(PairingCode, first.code)
        assert row.used is False
        assert row.encrypted_channel_key == "NEW"

    async def test_gives_up_after_bounded_attempts(
        self, db_session: AsyncSession, agent: AuthContext
    ):
        manager = PairingManager(db_session, PairingConfig(code_generation_attempts=3))
        first = await manager.create_code(agent, agent.channel_id, "ENC")

        with patch.object(PairingManager, "generate_code", return_value=first.code):
            with pytest.raises(InternalError):
                await manager.create_code(agent, agent.channel_id, "ENC")


class TestRedeem:
    async def test_redeem_issues_client_key(
        self, pairing_manager: PairingManager, agent: AuthContext, db_session: AsyncSession
    ):
        issued = await pairing_manager.create_code(agent, agent.channel_id, "ENC-KEY")
        client_key = issued.api_key

        redeemed = await pairing_manager.redeem(issued.code)

        assert redeemed.channel_id == agent.channel_id
        assert redeemed.api_key == client_key
        assert redeemed.encrypted_channel_key == "ENC-KEY"

        auth = await ApiKeyService.authenticate(db_session, client_key)
        assert auth is not None
        assert auth.channel_id == agent.channel_id
        assert auth.label == "client"

    async def test_custom_label(self, pairing_manager: PairingManager, agent: AuthContext, db_session):
        issued = await pairing_manager.create_code(agent, agent.channel_id, "ENC")
        await pairing_manager.redeem(issued.code, label="phone")

        result = await db_session.execute(select(ApiKey).where(ApiKey.label == "phone"))
        assert result.scalars().one().channel_id == agent.channel_id

    async def test_second_redeem_is_gone(
        self, pairing_manager: PairingManager, agent: AuthContext, db_session: AsyncSession
    ):
        issued = await pairing_manager.create_code(agent, agent.channel_id, "ENC")
        code = issued.code
        await pairing_manager.redeem(code)

        # The losing redeem rolls back, which expires every loaded instance
        with pytest.raises(GoneError, match="already used"):
            await pairing_manager.redeem(code)

        # Stored plaintext is scrubbed once redeemed
        row = await db_session.get(PairingCode, code)
        await db_session.refresh(row)
        assert row.used is True
        assert row.api_key == ""

    async def test_redemption_that_lost_the_race(
        self, session_factory, pairing_manager: PairingManager, agent: AuthContext
    ):
        """A redeemer that read the code before a rival committed still loses."""
        issued = await pairing_manager.create_code(agent, agent.channel_id, "ENC")

        async with session_factory() as slow_session, session_factory() as fast_session:
            slow = PairingManager(slow_session)
            # Slow redeemer has already loaded the (still unused) row
            stale = await slow_session.get(PairingCode, issued.code)
            assert stale.used is False

            await PairingManager(fast_session).redeem(issued.code)

            with pytest.raises(GoneError):
                await slow.redeem(issued.code)

            result = await slow_session.execute(
                select(ApiKey).where(ApiKey.channel_id == agent.channel_id)
            )
            # Agent key + exactly one client key
            assert len(result.scalars().all()) == 2

    async def test_expired_code_is_gone(
        self, pairing_manager: PairingManager, agent: AuthContext
    ):
        issued = await pairing_manager.create_code(agent, agent.channel_id, "ENC")

        later = issued.expires_at + timedelta(microseconds=1)
        with patch("relay.managers.pairing.pairing.utcnow", return_value=later):
            with pytest.raises(GoneError, match="expired"):
                await pairing_manager.redeem(issued.code)

    async def test_code_valid_at_exact_expiry(
        self, pairing_manager: PairingManager, agent: AuthContext
    ):
        issued = await pairing_manager.create_code(agent, agent.channel_id, "ENC")

        with patch("relay.managers.pairing.pairing.utcnow", return_value=issued.expires_at):
            redeemed = await pairing_manager.redeem(issued.code)

        assert redeemed.channel_id == agent.channel_id

    async def test_unknown_code(self, pairing_manager: PairingManager):
        with pytest.raises(NotFoundError, match="Invalid pairing code"):
            await pairing_manager.redeem("000000")

    @pytest.mark.parametrize("code", [None, ""])
    async def test_missing_code(self, pairing_manager: PairingManager, code):
        with pytest.raises(InvalidRequestError):
            await pairing_manager.redeem(code)
