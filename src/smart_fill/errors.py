from __future__ import annotations


class SmartFillError(Exception):
    """Base class for errors raised inside the smart fill engine."""


class ImageDecodeError(SmartFillError):
    """A single photo could not be fetched or decoded."""

    def __init__(self, image_id: str, reason: str) -> None:
        super().__init__(f"Could not decode image {image_id}: {reason}")
        self.image_id = image_id
        self.reason = reason


class ModelLoadError(SmartFillError):
    """The on-device face detector could not be loaded."""


class CacheIOError(SmartFillError):
    """A read or write against the analysis store failed."""

    def __init__(self, photo_id: str, operation: str, reason: str) -> None:
        super().__init__(f"Analysis cache {operation} failed for {photo_id}: {reason}")
        self.photo_id = photo_id
        self.operation = operation
