"""Mailbox API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from relay.api.dependencies import AuthDep, MailboxManagerDep
from relay.api.v1.schemas import CamelModel, DeletedResponse
from relay.models.message import Message
from relay.utils.datetime import to_iso

router = APIRouter()


class PostMessageRequest(CamelModel):
    sender: str | None = None
    content_type: str | None = None
    body: str | None = None
    nonce: str | None = None


class PostMessageResponse(CamelModel):
    id: str
    created_at: str


class MessageResponse(CamelModel):
    id: str
    sender: str
    content_type: str | None
    body: str
    nonce: str
    created_at: str


class MessageListResponse(CamelModel):
    messages: list[MessageResponse]


def _message_to_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        sender=message.sender,
        content_type=message.content_type,
        body=message.body,
        nonce=message.nonce,
        created_at=to_iso(message.created_at),
    )


@router.get("", response_model=MessageListResponse)
async def list_messages(
    mailbox_mgr: MailboxManagerDep,
    auth: AuthDep,
    since: str | None = Query(None, description="Only messages created after this ISO-8601 time"),
) -> MessageListResponse:
    """List the channel's messages, oldest first.

    Poll with ``since`` set to the last seen ``createdAt``.
    """
    messages = await mailbox_mgr.list(auth.channel_id, since)
    return MessageListResponse(messages=[_message_to_response(m) for m in messages])


@router.post("", response_model=PostMessageResponse, status_code=201)
async def post_message(
    request: PostMessageRequest,
    mailbox_mgr: MailboxManagerDep,
    auth: AuthDep,
) -> PostMessageResponse:
    message = await mailbox_mgr.post(
        auth.channel_id,
        sender=request.sender,
        content_type=request.content_type,
        body=request.body,
        nonce=request.nonce,
    )
    return PostMessageResponse(id=message.id, created_at=to_iso(message.created_at))


@router.delete("/{message_id}", response_model=DeletedResponse)
async def delete_message(
    message_id: str,
    mailbox_mgr: MailboxManagerDep,
    auth: AuthDep,
) -> DeletedResponse:
    await mailbox_mgr.delete(auth.channel_id, message_id)
    return DeletedResponse()
