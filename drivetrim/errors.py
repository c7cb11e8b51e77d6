from __future__ import annotations


class DriveTrimError(Exception):
    """Base class for errors surfaced to the user as a stage label."""

    label = "Error"

    def user_message(self) -> str:
        msg = str(self).strip()
        return f"{self.label}: {msg}" if msg else self.label


class ValidationError(DriveTrimError):
    """Edit options cannot form a non-empty selection."""

    label = "Invalid selection"


class TransportError(DriveTrimError):
    """Remote download/upload/delete/metadata call failed."""

    label = "Transfer failed"

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = int(status_code or 0)


class EngineError(DriveTrimError):
    """ffmpeg failed or crashed mid-run."""

    label = "Processing failed"

    def __init__(self, message: str, returncode: int = 0) -> None:
        super().__init__(message)
        self.returncode = int(returncode or 0)


class ResourceError(DriveTrimError):
    """The transcoding engine is not available (yet)."""

    label = "Engine unavailable"
