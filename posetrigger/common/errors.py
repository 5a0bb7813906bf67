from __future__ import annotations


class PoseTriggerError(RuntimeError):
    """Base class for recoverable collaborator failures."""


class InferenceError(PoseTriggerError):
    """The pose model could not process a frame."""


class CaptureError(PoseTriggerError):
    """Clip capture could not start, or finished without a usable file."""


class PersistError(PoseTriggerError):
    """A finished clip could not be moved into durable storage."""


class SourceError(PoseTriggerError):
    """The camera or video file could not be opened."""
