"""Typed failures raised by the blueprint service."""

from __future__ import annotations


class BlueprintServiceError(Exception):
    """Base failure carrying a human-readable reason for the caller."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class UserNotFoundError(BlueprintServiceError):
    def __init__(self, reason: str = "User not found"):
        super().__init__(reason)


class UserBannedError(BlueprintServiceError):
    def __init__(self, reason: str = "User is banned"):
        super().__init__(reason)


class InputDecodeError(BlueprintServiceError):
    """Submitted payload was not valid base64."""


class ArtifactUploadError(BlueprintServiceError):
    """Blueprint bytes could not be written; nothing was persisted."""


class ImageUploadError(BlueprintServiceError):
    """Preview image could not be written; the blueprint blob may already be stored."""
