"""Capture filename validation.

Uploaded filenames are caller-supplied and become the last segment of the
media-store key ``{channel_id}/{session_id}/{filename}``. They are trusted
only to the extent that they stay inside that session prefix; re-uploading
the same name overwrites the earlier object.
"""

from __future__ import annotations

from relay.errors import InvalidRequestError

MANIFEST_FILENAME = "manifest.json"

# Closed table, matched case-sensitively on the name ending. No content sniffing.
_CONTENT_TYPES: dict[str, str] = {
    ".webm": "audio/webm",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}
_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def validate_capture_filename(filename: str, *, field_name: str = "filename") -> str:
    """Validate that a filename is a single safe key segment.

    Rules:
    1. Must not be empty or whitespace
    2. Must not contain null bytes or path separators
    3. Must not be ``.`` or ``..``
    4. Must not shadow the session manifest

    Args:
        filename: Filename to validate
        field_name: Name of field for error messages

    Returns:
        The filename unchanged if valid

    Raises:
        InvalidRequestError: If validation fails

    Examples:
        >>> validate_capture_filename("photo-001.jpg")
        'photo-001.jpg'
        >>> validate_capture_filename("../other/photo.jpg")
        InvalidRequestError
    """
    if not filename or not filename.strip():
        raise InvalidRequestError(
            f"{field_name} cannot be empty",
            details={"field": field_name, "reason": "empty"},
        )

    if "\x00" in filename:
        raise InvalidRequestError(
            f"{field_name} contains invalid characters",
            details={"field": field_name, "reason": "null_byte"},
        )

    if "/" in filename or "\\" in filename:
        raise InvalidRequestError(
            f"{field_name} must not contain path separators",
            details={"field": field_name, "reason": "path_separator"},
        )

    if filename in (".", ".."):
        raise InvalidRequestError(
            f"{field_name} is not a valid file name",
            details={"field": field_name, "reason": "path_traversal"},
        )

    if filename == MANIFEST_FILENAME:
        raise InvalidRequestError(
            f"{field_name} is reserved: {MANIFEST_FILENAME}",
            details={"field": field_name, "reason": "reserved"},
        )

    return filename


def content_type_for(filename: str) -> str:
    """Derive the stored content type from a filename extension."""
    for extension, content_type in _CONTENT_TYPES.items():
        if filename.endswith(extension):
            return content_type
    return _DEFAULT_CONTENT_TYPE


def is_key_segment(value: str) -> bool:
    """Whether a caller-supplied id can stand as one media-store key segment."""
    if not value or value in (".", ".."):
        return False
    return not any(char in value for char in ("/", "\\", "\x00"))
