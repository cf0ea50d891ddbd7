from relay.managers.capture.capture import CaptureSessionManager
from relay.managers.capture.grants import CapabilityGrant, FinalizeGrant, OwnerGrant
from relay.managers.capture.manifest import CaptureFile, CaptureManifest

__all__ = [
    "CaptureSessionManager",
    "CapabilityGrant",
    "CaptureFile",
    "CaptureManifest",
    "FinalizeGrant",
    "OwnerGrant",
]
