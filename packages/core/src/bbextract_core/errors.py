"""Error taxonomy shared by the transport, decoding and extraction layers.

Callers choose between skipping and aborting by exception type:

- TransportError   : the remote call failed after the retry budget was spent.
- UnavailableError : the remote resource is legitimately absent (404).
- DecodeError      : the response does not have the expected shape.

ExtractError is the common base so a run-level error policy can catch every
per-unit failure with one clause.
"""

from __future__ import annotations


class ExtractError(Exception):
    """Base class for failures while extracting one unit of work."""


class TransportError(ExtractError):
    """Connection failure or non-2xx response that survived retries."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UnavailableError(ExtractError):
    """The requested resource does not exist on the remote side."""


class DecodeError(ExtractError):
    """A response or payload did not match the expected structure."""


class ConfigError(ValueError):
    """Process configuration is incomplete or contradictory."""
