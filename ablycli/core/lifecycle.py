"""
Subscription lifecycle controller.

Owns the run of one long-running interactive command (subscribe, enter
presence, live stats):

    INITIALIZING --acquire ok--> ACTIVE --trigger--> DRAINING --> CLOSED
    INITIALIZING --acquire failure--> DRAINING --> CLOSED

Rules:
- Signal handlers are installed once per controller, never per command
- await_termination() is the only indefinite suspension point
- Handles are released sequentially in reverse acquisition order
- Drain runs at most once; duplicate triggers are no-ops
- A watchdog bounds drain; on expiry the process is forced to exit(1)
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ablycli.core.errors import AcquisitionError, ForceExitError, ReleaseError
from ablycli.core.resources import ResourceHandle
from ablycli.shared.logging.logger import get_logger

log = get_logger("core.lifecycle")

DEFAULT_WATCHDOG_SECONDS = 5.0

Acquirer = Callable[[], Awaitable[ResourceHandle]]


class RunState(Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    DRAINING = "draining"
    CLOSED = "closed"


class TerminationReason(Enum):
    SIGNAL = "signal"
    FATAL_ERROR = "fatal_error"
    STOPPED = "stopped"


@dataclass
class LifecycleConfig:
    acquirers: Sequence[Acquirer] = field(default_factory=list)
    watchdog_seconds: float = DEFAULT_WATCHDOG_SECONDS
    install_signal_handlers: bool = True


@dataclass
class RunOutcome:
    success: bool
    reason: Optional[TerminationReason] = None
    exit_code: int = 0
    released: int = 0
    release_errors: List[str] = field(default_factory=list)
    forced: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "status": "closed",
            "reason": self.reason.value if self.reason else None,
            "exitCode": self.exit_code,
            "released": self.released,
            "forced": self.forced,
        }
        if self.release_errors:
            payload["releaseErrors"] = list(self.release_errors)
        if self.error:
            payload["error"] = self.error
        return payload


def _force_exit(code: int) -> None:
    try:
        sys.stdout.flush()
        sys.stderr.flush()
    finally:
        os._exit(code)


class LifecycleController:
    """
    Orchestrates acquisition, event flow and guaranteed teardown.

    Commands supply acquisition callbacks (and wire their SDK callbacks to
    an EventRouter); the controller supplies everything else.
    """

    TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(
        self,
        sink,
        *,
        force_exit: Callable[[int], None] = _force_exit,
    ):
        self._sink = sink
        self._force_exit = force_exit

        self._state = RunState.INITIALIZING
        self._handles: List[ResourceHandle] = []
        self._watchdog_seconds = DEFAULT_WATCHDOG_SECONDS

        self._started = False
        self._cleanup_in_progress = False
        self._stop_event: Optional[asyncio.Event] = None
        self._closed_event: Optional[asyncio.Event] = None
        self._reason: Optional[TerminationReason] = None
        self._fatal_error: Optional[BaseException] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed_signals: List[signal.Signals] = []
        self._previous_handlers: Dict[signal.Signals, Any] = {}

        self.release_errors: List[ReleaseError] = []
        self.forced = False

    # --------------------------------------------------
    # Introspection
    # --------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def handles(self) -> List[ResourceHandle]:
        return list(self._handles)

    @property
    def reason(self) -> Optional[TerminationReason]:
        return self._reason

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self._fatal_error

    @property
    def outcome(self) -> RunOutcome:
        success = (
            not self.forced
            and self._reason != TerminationReason.FATAL_ERROR
        )
        return RunOutcome(
            success=success,
            reason=self._reason,
            exit_code=0 if success else 1,
            released=sum(1 for h in self._handles if h.released),
            release_errors=[str(e) for e in self.release_errors],
            forced=self.forced,
            error=str(self._fatal_error) if self._fatal_error else None,
        )

    # --------------------------------------------------
    # Lifecycle
    # --------------------------------------------------

    async def start(self, config: LifecycleConfig) -> None:
        """
        Acquire every required handle, in order, then go ACTIVE.

        On the first acquisition failure the handles already acquired are
        released (reverse order) and AcquisitionError is raised.
        """
        if self._started:
            raise RuntimeError("LifecycleController.start() called twice")
        self._started = True

        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._closed_event = asyncio.Event()
        self._watchdog_seconds = float(config.watchdog_seconds)

        if config.install_signal_handlers:
            self._install_signal_handlers()

        for acquirer in config.acquirers:
            try:
                handle = await acquirer()
            except Exception as e:
                err = (
                    e
                    if isinstance(e, AcquisitionError)
                    else AcquisitionError(str(e) or e.__class__.__name__)
                )
                log.error(f"Acquisition failed: {err}")
                self._fatal_error = err
                self._reason = TerminationReason.FATAL_ERROR
                await self.drain()
                if err is e:
                    raise
                raise err from e

            if self._cleanup_in_progress:
                # drain() ran while this acquisition was in flight
                try:
                    await handle.release()
                except Exception as e:
                    self.release_errors.append(ReleaseError(handle, e))
                    log.warning(f"Late release of {handle} failed: {e}")
                break

            self._handles.append(handle)

        if self._state is RunState.INITIALIZING:
            self._state = RunState.ACTIVE
            log.info(f"Run active with {len(self._handles)} handle(s)")

    async def await_termination(self) -> TerminationReason:
        """
        Suspend until a signal, a fatal error, or stop() ends the run.
        """
        if self._stop_event is None:
            raise RuntimeError("LifecycleController.start() has not been called")

        await self._stop_event.wait()
        return self._reason or TerminationReason.STOPPED

    def stop(self) -> None:
        self._trigger(TerminationReason.STOPPED)

    def fail(self, error: BaseException) -> None:
        """Fatal error surfaced by the event router or an SDK listener."""
        if self._fatal_error is None:
            self._fatal_error = error
        self._trigger(TerminationReason.FATAL_ERROR)

    def _trigger(self, reason: TerminationReason) -> None:
        if self._reason is None:
            self._reason = reason
            log.info(f"Termination requested ({reason.value})")
        if self._stop_event is not None:
            self._stop_event.set()

    # --------------------------------------------------
    # Drain
    # --------------------------------------------------

    async def _release_all(self) -> None:
        for handle in reversed(self._handles):
            try:
                await handle.release()
            except Exception as e:
                err = ReleaseError(handle, e)
                self.release_errors.append(err)
                log.warning(f"{err} (continuing)")

    async def drain(self) -> None:
        """
        Release all handles under the watchdog and transition to CLOSED.
        Concurrent or repeated calls are no-ops.
        """
        if self._cleanup_in_progress or self._state is RunState.CLOSED:
            return
        self._cleanup_in_progress = True
        self._state = RunState.DRAINING

        log.info(f"Draining {len(self._handles)} handle(s)")

        release_task = asyncio.ensure_future(self._release_all())
        try:
            done, _ = await asyncio.wait(
                {release_task}, timeout=self._watchdog_seconds
            )
        except asyncio.CancelledError:
            release_task.cancel()
            raise

        if not done:
            release_task.cancel()
            self._on_watchdog_expired()
        else:
            self._close()
            log.info("Drain complete")

    def _on_watchdog_expired(self) -> None:
        err = ForceExitError(self._watchdog_seconds)
        self.forced = True
        log.error(str(err))
        try:
            self._sink.emit_error(err)
        except Exception as e:
            log.warning(f"Failed to report forced exit: {e}")
        self._close()
        self._force_exit(1)

    def _close(self) -> None:
        self._state = RunState.CLOSED
        self._remove_signal_handlers()
        if self._closed_event is not None:
            self._closed_event.set()

    async def wait_closed(self) -> None:
        if self._closed_event is not None:
            await self._closed_event.wait()

    # --------------------------------------------------
    # Convenience
    # --------------------------------------------------

    async def run(self, config: LifecycleConfig) -> int:
        """
        start -> await_termination -> drain -> emit_terminal.

        Returns the process exit code. AcquisitionError propagates.
        """
        await self.start(config)
        return await self.finish()

    async def finish(self) -> int:
        """Block until termination, drain and report. Returns the exit code."""
        await self.await_termination()
        await self.drain()

        outcome = self.outcome
        if self._fatal_error is not None and not self.forced:
            self._sink.emit_error(self._fatal_error)
        self._sink.emit_terminal(outcome)
        return outcome.exit_code

    # --------------------------------------------------
    # Signal handling
    # --------------------------------------------------

    def _on_signal(self, signum: int) -> None:
        log.info(f"Received signal {signum}")
        self._trigger(TerminationReason.SIGNAL)

    def _install_signal_handlers(self) -> None:
        """
        Prefer loop.add_signal_handler; fall back to signal.signal with a
        thread-safe hop back onto the loop where it is unsupported.
        """
        loop = self._loop
        for sig in self.TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, int(sig))
                self._installed_signals.append(sig)
                continue
            except (NotImplementedError, RuntimeError, ValueError):
                pass

            def _handler(signum, frame):
                loop.call_soon_threadsafe(self._on_signal, signum)

            try:
                self._previous_handlers[sig] = signal.signal(sig, _handler)
                self._installed_signals.append(sig)
            except (ValueError, OSError) as e:
                log.warning(f"Could not install handler for {sig!r}: {e}")

    def _remove_signal_handlers(self) -> None:
        for sig in self._installed_signals:
            if sig in self._previous_handlers:
                try:
                    signal.signal(sig, self._previous_handlers[sig])
                except (ValueError, OSError):
                    pass
                continue
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                pass
        self._installed_signals.clear()
        self._previous_handlers.clear()


__all__ = [
    "RunState",
    "TerminationReason",
    "LifecycleConfig",
    "RunOutcome",
    "LifecycleController",
    "DEFAULT_WATCHDOG_SECONDS",
]
