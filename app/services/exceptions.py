from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from app.services.error_classifier import ErrorKind


class PlantAnalysisError(Exception):
    """Base class for all errors raised by the analysis services."""


class QuotaExceededError(PlantAnalysisError):
    """The AI service rejected a request because a usage or rate limit was hit."""


class ParseError(PlantAnalysisError):
    """A model reply did not contain a usable JSON object."""


class ImageProcessingError(PlantAnalysisError):
    """An image could not be decoded, resized or re-encoded."""


class PersistenceError(PlantAnalysisError):
    """A write to the local blob store failed, usually because it is full."""


class AnalysisInProgressError(PlantAnalysisError):
    """An analysis was requested while another one is still running."""


class AnalysisError(PlantAnalysisError):
    """
    The analysis pipeline was aborted.

    ``kind`` is the classified cause (see ``error_classifier.ErrorKind``),
    ``stage`` the pipeline stage that failed and ``str(error)`` the message
    meant for the end user. The original exception is kept as ``__cause__``.
    """

    def __init__(self, message: str, kind: "ErrorKind", stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.stage = stage
