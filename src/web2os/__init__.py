"""web2os - Chain browser and host steps against one Playwright window."""

__version__ = "1.1.0"

from .engine.runner import TaskRunner, create
from .tasks.base import DrainState, RunnerBusyError, ScriptRejection, Step, StepKind

__all__ = [
    "TaskRunner",
    "create",
    "DrainState",
    "RunnerBusyError",
    "ScriptRejection",
    "Step",
    "StepKind",
    "__version__",
]
