"""API v1 router."""

from fastapi import APIRouter

from relay.api.v1.capture import router as capture_router
from relay.api.v1.channels import router as channels_router
from relay.api.v1.messages import router as messages_router

router = APIRouter()

router.include_router(channels_router, tags=["channels"])
router.include_router(messages_router, prefix="/messages", tags=["messages"])
router.include_router(capture_router, prefix="/api/capture/sessions", tags=["capture"])
