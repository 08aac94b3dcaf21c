"""Exception hierarchy for the synchronization engine.

Every network failure is mapped onto one of these before it reaches a
flow, so the retry loops only ever catch ``ChatSyncError``.
"""
from __future__ import annotations


class ChatSyncError(Exception):
    """Base exception for all synchronization errors."""


class TransportError(ChatSyncError):
    """The request could not be completed at the transport level."""
    def __init__(self, endpoint: str, reason: str):
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"Transport failure on {self.endpoint}: {self.reason}"


class AmbiguousDeliveryError(TransportError):
    """The request was written but the response was lost.

    The server may or may not have acted on it.
    """

    def _describe(self) -> str:
        return (
            f"Request to {self.endpoint} may have been delivered, "
            f"response lost: {self.reason}"
        )


class ResponseStatusError(ChatSyncError):
    """The server answered with a non-success HTTP status."""
    def __init__(self, endpoint: str, status: int):
        self.endpoint = endpoint
        self.status = status
        super().__init__(f"{endpoint} returned HTTP {status}")


class MalformedResponseError(ChatSyncError):
    """The response body was not the JSON shape the endpoint promises."""
    def __init__(self, endpoint: str, detail: str):
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f"Unexpected response from {endpoint}: {detail}")


class RetryExhaustedError(ChatSyncError):
    """A bounded retry policy ran out of attempts."""
    def __init__(self, flow: str, attempts: int, last_error: Exception | None = None):
        self.flow = flow
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{flow} gave up after {attempts} attempt(s)"
            + (f": {last_error}" if last_error is not None else "")
        )
