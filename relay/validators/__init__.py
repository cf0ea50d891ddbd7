"""Validation utilities for Relay API."""

from relay.validators.filename import content_type_for, is_key_segment, validate_capture_filename

__all__ = ["validate_capture_filename", "content_type_for", "is_key_segment"]
