"""
Error taxonomy for Stream Capture.
Every stream-level error is handled at the layer that detects it;
only CaptureFatalError is meant to reach the process boundary.
"""

from typing import Optional


class CaptureError(Exception):
    """Base class for capture errors."""


class SourceNotFound(CaptureError):
    """The channel page carries no usable HLS source."""


class TransientPollError(CaptureError):
    """Media playlist could not be fetched; the feed may only be stalled."""

    def __init__(self, message: str, retry_after: float = 3.0):
        super().__init__(message)
        self.retry_after = retry_after


class EmptySegment(CaptureError):
    """Upstream returned a zero-length segment body."""

    def __init__(self, uri: str):
        super().__init__(f"Empty segment: {uri}")
        self.uri = uri


class PermanentSegmentLoss(CaptureError):
    """A staged artifact never appeared within the retry budget."""

    def __init__(self, index: int, attempts: int, path: Optional[str] = None):
        super().__init__(f"Segment {index} missing after {attempts} retries")
        self.index = index
        self.attempts = attempts
        self.path = path


class CaptureFatalError(CaptureError):
    """Local failure (output directory/file) that must stop the process."""
