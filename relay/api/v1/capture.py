"""Capture session API endpoints.

Uploads carry the file as the raw request body; metadata travels in
``X-Capture-Filename``, ``X-Capture-Started-At`` and ``X-Capture-Source``.
Finalize additionally accepts the session's ``?token=`` in place of a
bearer key.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import Response

from relay.api.dependencies import AuthDep, CaptureManagerDep, FinalizeGrantDep
from relay.api.v1.schemas import CamelModel, DeletedResponse
from relay.models.capture import CaptureSession
from relay.utils.datetime import to_iso

router = APIRouter()


class CreateCaptureSessionResponse(CamelModel):
    session_id: str
    finalize_token: str
    started_at: str


class UploadResponse(CamelModel):
    uploaded: str
    size: int


class FinalizeResponse(CamelModel):
    finalized: bool = True
    ended_at: str


class CaptureSessionResponse(CamelModel):
    id: str
    started_at: str
    ended_at: str | None
    status: str
    file_count: int
    last_activity_at: str


class CaptureSessionListResponse(CamelModel):
    sessions: list[CaptureSessionResponse]


def _session_to_response(session: CaptureSession) -> CaptureSessionResponse:
    return CaptureSessionResponse(
        id=session.id,
        started_at=to_iso(session.started_at),
        ended_at=to_iso(session.ended_at) if session.ended_at else None,
        status=session.status.value,
        file_count=session.file_count,
        last_activity_at=to_iso(session.last_activity_at),
    )


@router.post("", response_model=CreateCaptureSessionResponse, status_code=201)
async def create_capture_session(
    capture_mgr: CaptureManagerDep,
    auth: AuthDep,
) -> CreateCaptureSessionResponse:
    session = await capture_mgr.create(auth.channel_id)
    return CreateCaptureSessionResponse(
        session_id=session.id,
        finalize_token=session.finalize_token,
        started_at=to_iso(session.started_at),
    )


@router.get("", response_model=CaptureSessionListResponse)
async def list_capture_sessions(
    capture_mgr: CaptureManagerDep,
    auth: AuthDep,
    status: str | None = Query(None, description="Filter by status (active | completed)"),
) -> CaptureSessionListResponse:
    """List the channel's capture sessions, newest first."""
    sessions = await capture_mgr.list(auth.channel_id, status)
    return CaptureSessionListResponse(sessions=[_session_to_response(s) for s in sessions])


@router.post("/{session_id}/upload", response_model=UploadResponse)
async def upload_capture_file(
    session_id: str,
    request: Request,
    capture_mgr: CaptureManagerDep,
    auth: AuthDep,
    x_capture_filename: Annotated[str | None, Header()] = None,
    x_capture_started_at: Annotated[str | None, Header()] = None,
    x_capture_source: Annotated[str | None, Header()] = None,
) -> UploadResponse:
    data = await request.body()
    size = await capture_mgr.upload(
        auth.channel_id,
        session_id,
        filename=x_capture_filename,
        started_at=x_capture_started_at,
        source=x_capture_source,
        data=data,
    )
    return UploadResponse(uploaded=x_capture_filename, size=size)


@router.post("/{session_id}/finalize", response_model=FinalizeResponse)
async def finalize_capture_session(
    session_id: str,
    capture_mgr: CaptureManagerDep,
    grant: FinalizeGrantDep,
) -> FinalizeResponse:
    """Finalize a session with a bearer key of its channel or its finalize token."""
    ended_at = await capture_mgr.finalize(grant, session_id)
    return FinalizeResponse(ended_at=to_iso(ended_at))


@router.get("/{session_id}/manifest")
async def get_capture_manifest(
    session_id: str,
    capture_mgr: CaptureManagerDep,
    auth: AuthDep,
) -> Response:
    obj = await capture_mgr.get_manifest(auth.channel_id, session_id)
    return Response(content=obj.data, media_type="application/json")


@router.get("/{session_id}/files/{filename}")
async def get_capture_file(
    session_id: str,
    filename: str,
    capture_mgr: CaptureManagerDep,
    auth: AuthDep,
) -> Response:
    obj = await capture_mgr.get_file(auth.channel_id, session_id, filename)
    return Response(content=obj.data, media_type=obj.content_type)


@router.delete("/{session_id}", response_model=DeletedResponse)
async def delete_capture_session(
    session_id: str,
    capture_mgr: CaptureManagerDep,
    auth: AuthDep,
) -> DeletedResponse:
    """Delete a session with every file and its manifest."""
    await capture_mgr.delete(auth.channel_id, session_id)
    return DeletedResponse()
