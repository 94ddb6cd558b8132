"""
Step model for web2os task queues.

A queue holds three kinds of step: navigating the window (OPEN), running
JavaScript in the page (ON_WEB) and running Python in the host process
(ON_OS). The runner drains them in insertion order, handing one data value
from each step to the next.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


class StepKind(str, Enum):
    """Which environment a step runs in."""
    OPEN = "open"
    ON_WEB = "on_web"
    ON_OS = "on_os"


class DrainState(Enum):
    """States of a runner while it drains its queue."""
    IDLE = "idle"
    DISPATCHING = "dispatching"
    ABORTED = "aborted"
    DONE = "done"


class StepStatus(str, Enum):
    """Outcome of a single dispatched step."""
    DISPATCHED = "dispatched"  # open: navigation started, not awaited
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class ScriptRejection(Exception):
    """Raised when JavaScript evaluated in the page throws or rejects."""

    def __init__(self, reason: Any = None):
        self.reason = reason
        super().__init__(str(reason) if reason is not None else "script rejected")


class RunnerBusyError(RuntimeError):
    """Raised when a runner is asked to drain while a drain is in progress."""


@dataclass
class Step:
    """A single queued unit of work."""
    kind: StepKind
    url: Optional[str] = None
    code: Any = None
    wrap_as_promise: bool = False
    callback: Optional[Callable] = None

    @classmethod
    def open(cls, url: str) -> "Step":
        return cls(kind=StepKind.OPEN, url=url)

    @classmethod
    def run_in_page(cls, code: Any, wrap_as_promise: bool = False) -> "Step":
        return cls(kind=StepKind.ON_WEB, code=code, wrap_as_promise=wrap_as_promise)

    @classmethod
    def run_in_host(cls, callback: Callable) -> "Step":
        return cls(kind=StepKind.ON_OS, callback=callback)

    def describe(self) -> str:
        """Short human-readable summary used in logs."""
        if self.kind == StepKind.OPEN:
            return f"open {self.url}"
        if self.kind == StepKind.ON_WEB:
            text = self.code if isinstance(self.code, str) else repr(self.code)
            text = " ".join(text.split())
            if len(text) > 60:
                text = text[:57] + "..."
            return f"on_web {text}"
        name = getattr(self.callback, "__name__", repr(self.callback))
        return f"on_os {name}"
