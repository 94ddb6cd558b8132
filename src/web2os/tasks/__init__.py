"""Step model for queued browser and host tasks."""

from .base import (
    DrainState,
    RunnerBusyError,
    ScriptRejection,
    Step,
    StepKind,
    StepStatus,
)

__all__ = [
    "DrainState",
    "RunnerBusyError",
    "ScriptRejection",
    "Step",
    "StepKind",
    "StepStatus",
]
