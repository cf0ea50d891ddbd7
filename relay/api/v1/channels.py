"""Channel and pairing API endpoints.

- POST /channels                create a channel and its agent key
- POST /channels/{id}/pair      issue a pairing code (bearer)
- POST /pair                    redeem a pairing code (no auth)
"""

from __future__ import annotations

from fastapi import APIRouter

from relay.api.dependencies import AuthDep, ChannelManagerDep, PairingManagerDep
from relay.api.v1.schemas import CamelModel
from relay.utils.datetime import to_iso

router = APIRouter()


class CreateChannelResponse(CamelModel):
    channel_id: str
    api_key: str


class CreatePairingCodeRequest(CamelModel):
    encrypted_channel_key: str | None = None


class PairingCodeResponse(CamelModel):
    code: str
    expires_at: str


class RedeemPairingCodeRequest(CamelModel):
    code: str | None = None
    label: str | None = None


class RedeemPairingCodeResponse(CamelModel):
    channel_id: str
    api_key: str
    encrypted_channel_key: str


@router.post("/channels", response_model=CreateChannelResponse, status_code=201)
async def create_channel(channel_mgr: ChannelManagerDep) -> CreateChannelResponse:
    """Create a channel. The agent key is only ever returned here."""
    channel, api_key = await channel_mgr.create()
    return CreateChannelResponse(channel_id=channel.id, api_key=api_key)


@router.post(
    "/channels/{channel_id}/pair",
    response_model=PairingCodeResponse,
    status_code=201,
)
async def create_pairing_code(
    channel_id: str,
    request: CreatePairingCodeRequest,
    pairing_mgr: PairingManagerDep,
    auth: AuthDep,
) -> PairingCodeResponse:
    pairing_code = await pairing_mgr.create_code(
        auth,
        channel_id,
        request.encrypted_channel_key,
    )
    return PairingCodeResponse(
        code=pairing_code.code,
        expires_at=to_iso(pairing_code.expires_at),
    )


@router.post("/pair", response_model=RedeemPairingCodeResponse)
async def redeem_pairing_code(
    request: RedeemPairingCodeRequest,
    pairing_mgr: PairingManagerDep,
) -> RedeemPairingCodeResponse:
    """Redeem a pairing code. Succeeds at most once per code."""
    pairing_code = await pairing_mgr.redeem(request.code, request.label)
    return RedeemPairingCodeResponse(
        channel_id=pairing_code.channel_id,
        api_key=pairing_code.api_key,
        encrypted_channel_key=pairing_code.encrypted_channel_key,
    )
