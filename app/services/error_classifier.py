# app/services/error_classifier.py
from enum import Enum
from typing import Dict, Tuple, Type

from google.api_core import exceptions as google_exceptions

from app.services.exceptions import QuotaExceededError

# Gemini does not hand us a reliable structured code for quota problems, so
# the message text is sniffed instead. Matching is case-sensitive.
QUOTA_MARKERS: Tuple[str, ...] = ("quota", "limit", "exceeded", "RESOURCE_EXHAUSTED")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    ConnectionError,
    TimeoutError,
)


class ErrorKind(str, Enum):
    QUOTA = "quota"
    TRANSIENT = "transient"
    FATAL = "fatal"


QUOTA_MESSAGE = (
    "The plant analysis service has reached its usage limit. "
    "Please try again later."
)
TRANSIENT_MESSAGE = (
    "The plant analysis service is temporarily unavailable. "
    "Please try again in a moment."
)
GENERIC_MESSAGE = (
    "Failed to analyze the image. Please try again with a clearer photo of the plant."
)

USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.QUOTA: QUOTA_MESSAGE,
    ErrorKind.TRANSIENT: TRANSIENT_MESSAGE,
    ErrorKind.FATAL: GENERIC_MESSAGE,
}


def is_quota_message(message: str) -> bool:
    return any(marker in message for marker in QUOTA_MARKERS)


def classify(error: BaseException) -> ErrorKind:
    """Sort a failure into quota, transient or fatal."""
    if isinstance(error, QuotaExceededError) or is_quota_message(str(error)):
        return ErrorKind.QUOTA
    if isinstance(error, TRANSIENT_ERRORS):
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def user_message(kind: ErrorKind) -> str:
    return USER_MESSAGES[kind]
