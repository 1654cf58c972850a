import asyncio

import pytest
from google.api_core import exceptions as google_exceptions

from app.services.error_classifier import (
    GENERIC_MESSAGE,
    QUOTA_MESSAGE,
    ErrorKind,
    classify,
    user_message,
)
from app.services.exceptions import ParseError, QuotaExceededError


@pytest.mark.parametrize("message", [
    "RESOURCE_EXHAUSTED: quota exceeded",
    "You exceeded your current quota",
    "rate limit reached for requests",
    "429 Resource has been exhausted (e.g. check quota).",
])
def test_quota_messages_are_classified_as_quota(message):
    assert classify(Exception(message)) is ErrorKind.QUOTA


def test_quota_matching_is_case_sensitive():
    assert classify(Exception("QUOTA")) is ErrorKind.FATAL
    assert classify(Exception("resource_exhausted")) is ErrorKind.FATAL


def test_quota_error_type_is_quota_regardless_of_message():
    assert classify(QuotaExceededError("slow down")) is ErrorKind.QUOTA


def test_transient_errors():
    assert classify(google_exceptions.ServiceUnavailable("backend down")) is ErrorKind.TRANSIENT
    assert classify(ConnectionError("reset by peer")) is ErrorKind.TRANSIENT
    assert classify(TimeoutError("timed out")) is ErrorKind.TRANSIENT
    assert classify(asyncio.TimeoutError()) is ErrorKind.TRANSIENT


def test_parse_and_unknown_errors_are_fatal():
    assert classify(ParseError("Failed to parse JSON response from Gemini API")) is ErrorKind.FATAL
    assert classify(ValueError("boom")) is ErrorKind.FATAL


def test_quota_message_differs_from_generic_message():
    assert user_message(ErrorKind.QUOTA) == QUOTA_MESSAGE
    assert user_message(ErrorKind.FATAL) == GENERIC_MESSAGE
    assert QUOTA_MESSAGE != GENERIC_MESSAGE
