"""
Resource handles for live, connection-bearing resources.

A handle wraps one external acquisition (channel subscription, presence
entrance, polling timer, realtime connection) behind a uniform, idempotent
release capability.

Rules:
- A handle exists only after a successful acquisition
- release() may be called any number of times; only the first call
  reaches the underlying teardown
- Acquisition failures (including timeouts) surface as AcquisitionError
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from ablycli.core.errors import AcquisitionError
from ablycli.shared.logging.logger import get_logger

log = get_logger("core.resources")


class ResourceKind(str, Enum):
    SUBSCRIPTION = "subscription"
    PRESENCE = "presence"
    TIMER = "timer"
    CONNECTION = "connection"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ResourceHandle:
    """
    One acquired external resource with an exclusively owned release.
    """

    def __init__(
        self,
        kind: ResourceKind,
        name: str,
        release: Callable[[], Any],
        *,
        acquired_at: Optional[datetime] = None,
    ):
        self.kind = ResourceKind(kind)
        self.name = name
        self.acquired_at = acquired_at or datetime.now(timezone.utc)
        self._release = release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        """
        Release the resource. Second and later calls are no-ops.

        The released flag flips before the teardown runs so a failing or
        abandoned teardown is never retried.
        """
        if self._released:
            return
        self._released = True

        log.debug(f"Releasing {self}")
        await _maybe_await(self._release())

    def __repr__(self) -> str:
        return f"<ResourceHandle {self.kind.value}:{self.name}>"


async def acquire(
    kind: ResourceKind,
    name: str,
    setup: Callable[[], Any],
    teardown: Callable[[Any], Any],
    *,
    timeout: Optional[float] = None,
) -> ResourceHandle:
    """
    Run setup (sync or async) and wrap the result in a ResourceHandle
    whose release calls teardown(result).
    """
    try:
        pending = _maybe_await(setup())
        if timeout is not None:
            result = await asyncio.wait_for(pending, timeout)
        else:
            result = await pending
    except AcquisitionError:
        raise
    except asyncio.TimeoutError as e:
        raise AcquisitionError(
            f"Timed out acquiring {kind.value} '{name}' after {timeout:g}s",
            kind=kind.value,
            name=name,
        ) from e
    except Exception as e:
        raise AcquisitionError(
            f"Failed to acquire {kind.value} '{name}': {e}",
            kind=kind.value,
            name=name,
        ) from e

    handle = ResourceHandle(kind, name, lambda: teardown(result))
    log.debug(f"Acquired {handle}")
    return handle


__all__ = [
    "ResourceKind",
    "ResourceHandle",
    "acquire",
]
