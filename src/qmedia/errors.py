from __future__ import annotations


class QmediaError(Exception):
    """Base class for every error raised by qmedia."""


class ExtractionError(QmediaError):
    """Metadata could not be read from a file."""


class DateResolutionError(ExtractionError):
    """No usable capture date could be derived for a file."""


class PersistenceError(QmediaError):
    pass


class GenerationError(QmediaError):
    """A derived asset (thumbnail, frame, transcode) could not be produced."""


class ThumbnailOutOfRange(GenerationError):
    def __init__(self, size: int, width: int):
        super().__init__(f"thumbnail size {size} is not valid for width {width}")
        self.size = size
        self.width = width


class NotFoundError(QmediaError):
    pass


class ScanCanceled(QmediaError):
    """Raised when a running scan observes its cancellation signal."""

    def __init__(self, phase: str):
        super().__init__(f"scan canceled while {phase}")
        self.phase = phase
