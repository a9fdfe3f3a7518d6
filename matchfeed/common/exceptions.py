"""Custom exceptions for the match feed service.

REST handlers raise these instead of generic ones. The FastAPI exception
handler in main.py catches MatchFeedError and returns a structured JSON
error response with the subclass's ``status_code``.
"""

from __future__ import annotations


class MatchFeedError(Exception):
    """Base exception for all match feed errors.

    Args:
        message: Human-readable error description.
        context: Optional dict of structured data for logging/debugging.
    """

    status_code: int = 400

    def __init__(self, message: str, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            safe_context = {
                k: "[REDACTED]" if _is_secret_key(k) else v for k, v in self.context.items()
            }
            return f"{super().__str__()} | context={safe_context}"
        return super().__str__()


class NotFoundError(MatchFeedError):
    """A requested match (or other entity) does not exist."""

    status_code = 404


class ConflictError(MatchFeedError):
    """The write would violate a uniqueness constraint."""

    status_code = 409


class DuplicateSequenceError(ConflictError):
    """A commentary row with this (match_id, sequence) already exists."""


class InvalidMatchTimesError(MatchFeedError):
    """Match start/end times are unparseable or out of order."""


class SeedDataError(MatchFeedError):
    """The seed file is missing or does not have a recognised shape."""


def _is_secret_key(key: str) -> bool:
    """Check if a dict key name suggests it contains secret data."""
    secret_words = {"key", "secret", "password", "token", "private", "credential"}
    key_lower = key.lower()
    return any(word in key_lower for word in secret_words)
