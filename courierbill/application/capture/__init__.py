"""Capture session workflows."""

from courierbill.application.capture.session import (
    CaptureSessionController,
    CaptureSessionError,
    CloseResult,
)

__all__ = [
    "CaptureSessionController",
    "CaptureSessionError",
    "CloseResult",
]
