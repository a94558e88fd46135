"""
Core runtime for interactive commands.

Contained responsibilities:
- Lifecycle orchestration (start / await termination / drain)
- Resource handle acquisition and idempotent release
- Event routing (normalize, self-filter, dedupe)
- Error taxonomy

IMPORTANT:
- Importing this package MUST NOT install signal handlers
- Importing this package MUST NOT create asyncio tasks
"""

from ablycli.core.errors import (
    AblyCliError,
    AcquisitionError,
    DispatchError,
    ForceExitError,
    ReleaseError,
)
from ablycli.core.lifecycle import (
    LifecycleConfig,
    LifecycleController,
    RunOutcome,
    RunState,
    TerminationReason,
)
from ablycli.core.resources import ResourceHandle, ResourceKind, acquire
from ablycli.core.router import DedupeKey, EventRouter

__all__ = [
    "AblyCliError",
    "AcquisitionError",
    "DispatchError",
    "ForceExitError",
    "ReleaseError",
    "LifecycleConfig",
    "LifecycleController",
    "RunOutcome",
    "RunState",
    "TerminationReason",
    "ResourceHandle",
    "ResourceKind",
    "acquire",
    "DedupeKey",
    "EventRouter",
]
