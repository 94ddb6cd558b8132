"""
Completion logger: tracks drain and step timing, produces JSON logs.

Writes to disk on every state change for crash safety.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from web2os.tasks.base import DrainState, Step, StepStatus

logger = logging.getLogger(__name__)


class CompletionLogger:
    """
    Tracks drain and step timing for one runner.

    Usage:
        cl = CompletionLogger(log_dir, "scraper")
        cl.start_drain(queued_steps=3)
        cl.start_step(step)
        cl.end_step(StepStatus.FULFILLED)
        cl.end_drain(DrainState.DONE)
    """

    def __init__(self, log_dir: str | Path = "json_logs", runner_name: str = "web2os"):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.runner_name = runner_name
        self.session_start = datetime.now()

        self.session_data = {
            "session_start": self.session_start.isoformat(),
            "runner_name": runner_name,
            "drains": [],
        }

        self.current_drain = None
        self.current_step = None

        timestamp = self.session_start.strftime("%Y%m%d_%H%M%S_%f")
        filename = f"drain_{self._clean_name(runner_name)}_{timestamp}.json"
        self.session_file = self.log_dir / filename

        self._write_to_disk()

    @staticmethod
    def _clean_name(name: str) -> str:
        name = name.replace("/", "-").replace("\\", "-").replace(" ", "_")
        name = re.sub(r"[^a-zA-Z0-9._-]", "", name)
        return name or "web2os"

    @staticmethod
    def _duration(start_iso: str, end: datetime) -> float:
        return round((end - datetime.fromisoformat(start_iso)).total_seconds(), 3)

    def _write_to_disk(self):
        try:
            with open(self.session_file, "w") as f:
                json.dump(self.session_data, f, indent=2, default=repr)
        except Exception as e:
            logger.error(f"Failed to write drain log: {e}")

    def start_drain(self, queued_steps: int = 0):
        self.current_drain = {
            "start_time": datetime.now().isoformat(),
            "end_time": None,
            "queued_steps": queued_steps,
            "outcome": None,
            "duration_seconds": None,
            "steps": [],
        }
        self._write_to_disk()

    def start_step(self, step: Step):
        self.current_step = {
            "kind": step.kind.value,
            "detail": step.describe(),
            "start_time": datetime.now().isoformat(),
            "end_time": None,
            "status": None,
            "error": None,
            "duration_seconds": None,
        }
        self._write_to_disk()

    def end_step(self, status: StepStatus, error=None):
        if not self.current_step:
            logger.warning("end_step called with no active step")
            return

        now = datetime.now()
        self.current_step["end_time"] = now.isoformat()
        self.current_step["status"] = status.value
        self.current_step["duration_seconds"] = self._duration(self.current_step["start_time"], now)
        if error is not None:
            self.current_step["error"] = str(error)

        if self.current_drain is not None:
            self.current_drain["steps"].append(self.current_step)

        self.current_step = None
        self._write_to_disk()

    def end_drain(self, outcome: DrainState):
        if not self.current_drain:
            logger.warning("end_drain called with no active drain")
            return

        now = datetime.now()
        self.current_drain["end_time"] = now.isoformat()
        self.current_drain["outcome"] = outcome.value
        self.current_drain["duration_seconds"] = self._duration(self.current_drain["start_time"], now)

        self.session_data["drains"].append(self.current_drain)
        self.current_drain = None
        self._write_to_disk()
