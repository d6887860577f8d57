"""Errors raised by the measurement engine.

Verification findings are never raised; they are recorded by
:class:`evifluor.services.verification.Verification` and stored with the
run log. Everything here is fatal to the operation that raised it.
"""

from typing import Optional


class EviFluorError(RuntimeError):
    """Base class for all evifluor errors."""


class ProtocolError(EviFluorError):
    """Raised when a device response is malformed or does not match the command sent."""


class DeviceError(ProtocolError):
    """Raised when the device answers a command with ``E <code>``."""

    def __init__(self, code: int, command: str, text: Optional[str] = None) -> None:
        self.code = code
        self.command = command
        self.text = text or "Unknown error"
        super().__init__(f"Response of TX:{command} has an error: {self.text} ({code})")


class DeviceTimeoutError(ProtocolError, TimeoutError):
    """Raised when no response line arrives within the configured timeout."""


class CalibrationError(EviFluorError):
    """Raised when calibration factors or a concentration cannot be computed."""


class SequencerError(EviFluorError):
    """Raised when a run step is requested without the data it depends on."""
