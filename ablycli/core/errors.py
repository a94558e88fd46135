"""Error taxonomy for the subscription lifecycle runtime.

Propagation rules:
- AcquisitionError and ForceExitError are fatal for the run
- ReleaseError and DispatchError are contained and only logged
- ConfigError, ControlApiError, RestApiError and UsageError surface to the command layer
"""

from __future__ import annotations

from typing import Any, Optional


class AblyCliError(Exception):
    """Base class for every error the CLI reports to the user."""

    exit_code = 1


class AcquisitionError(AblyCliError):
    """
    A required resource (subscription, presence entry, timer, connection)
    could not be established. Never retried by the controller.
    """

    def __init__(
        self,
        reason: str,
        *,
        kind: Optional[str] = None,
        name: Optional[str] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        self.kind = kind
        self.name = name


class ReleaseError(AblyCliError):
    """A handle failed to release during drain."""

    def __init__(self, handle: Any, cause: BaseException):
        super().__init__(f"Failed to release {handle}: {cause}")
        self.handle = handle
        self.cause = cause


class ForceExitError(AblyCliError):
    """Drain did not complete inside the watchdog window."""

    def __init__(self, timeout: float):
        super().__init__(f"Force exiting after timeout ({timeout:g}s)")
        self.timeout = timeout


class DispatchError(AblyCliError):
    """Routing or rendering of a single event failed."""

    def __init__(self, source_kind: str, cause: BaseException):
        super().__init__(f"Failed to dispatch {source_kind} event: {cause}")
        self.source_kind = source_kind
        self.cause = cause


class ConfigError(AblyCliError):
    """Credentials or config documents are missing or invalid."""


class UsageError(AblyCliError):
    """Invalid command-line input (bad flag value, unknown command)."""

    exit_code = 2


class ControlApiError(AblyCliError):
    """The Control API answered with a non-success status."""

    def __init__(self, status: int, message: str):
        super().__init__(
            f"Control API request failed: {status} - {message}"
        )
        self.status = status
        self.message = message


class RestApiError(AblyCliError):
    """The Ably REST API rejected a request."""

    def __init__(self, status: Optional[int], message: str):
        super().__init__(f"Ably REST request failed: {status or 'unknown'} - {message}")
        self.status = status
        self.message = message


__all__ = [
    "AblyCliError",
    "AcquisitionError",
    "ReleaseError",
    "ForceExitError",
    "DispatchError",
    "ConfigError",
    "ControlApiError",
    "RestApiError",
    "UsageError",
]
