"""Custom exception hierarchy for pyhyperbeam."""

from __future__ import annotations

from typing import Any


class HyperBeamError(Exception):
    """Base exception for all pyhyperbeam errors."""


class HyperBeamConfigError(HyperBeamError):
    """Invalid or missing configuration."""


class HyperBeamEncodeError(HyperBeamError):
    """A request could not be constructed.

    Always raised locally, before any network I/O is attempted.
    """


class UnencodableValueError(HyperBeamEncodeError):
    """A value has no unambiguous wire form (e.g. contains a separator)."""

    def __init__(self, message: str, *, value: Any = None) -> None:
        self.value = value
        super().__init__(message)


class DuplicateKeyError(HyperBeamEncodeError):
    """A mapping or parameter list repeats a key."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class InvalidSegmentError(HyperBeamEncodeError):
    """An address segment is empty or contains a path separator."""

    def __init__(self, message: str, *, segment: str = "") -> None:
        self.segment = segment
        super().__init__(message)


class TypeMismatchError(HyperBeamEncodeError):
    """A wire parameter does not match its declared type."""

    def __init__(self, message: str, *, literal: str = "") -> None:
        self.literal = literal
        super().__init__(message)


class HyperBeamTransportError(HyperBeamError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        address: str = "",
    ) -> None:
        self.status_code = status_code
        self.address = address
        super().__init__(message)


class HyperBeamTimeoutError(HyperBeamTransportError):
    """The request did not complete within the configured timeout."""


class RequestFailedError(HyperBeamTransportError):
    """The node answered with a non-success status.

    The response body is never parsed for these; ``status_code`` and
    ``status_text`` are all the node is trusted to have said.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        status_text: str = "",
        address: str = "",
    ) -> None:
        self.status_text = status_text
        super().__init__(message, status_code=status_code, address=address)


class MalformedResponseError(HyperBeamTransportError):
    """A 2xx response body could not be decoded or parsed."""


class PredicateNotMetError(HyperBeamError):
    """``wait_for`` exhausted its attempts without the predicate holding."""

    def __init__(self, message: str, *, attempts: int, last_state: Any = None) -> None:
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(message)
