"""
web2os task runner: queue browser and host steps, then drain them in order.

Usage:
    import web2os

    def save_title(done, error, title):
        Path("title.txt").write_text(title)
        done()

    (
        web2os.create({"browser": {"show": False}})
        .open("https://www.example.com")
        .on_web("(done, error) => done(document.title)")
        .on_os(save_title)
        .run(lambda data: print("DONE!"))
    )

Workflow of a drain:
1. Wait for the browser runtime to be ready
2. Open one window with the configured browser options
3. Pop and dispatch steps until the queue is empty or a rejection aborts it
4. Close the window and call on_complete with the last data value
"""

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Callable, Optional

from web2os.browser.manager import BrowserRuntime, get_runtime
from web2os.config.loader import resolve_options
from web2os.engine.completion_logger import CompletionLogger
from web2os.tasks.base import (
    DrainState,
    RunnerBusyError,
    ScriptRejection,
    Step,
    StepKind,
    StepStatus,
)

logger = logging.getLogger(__name__)


class TaskRunner:
    """
    Ordered queue of steps bound to a single browser window.

    Every queueing method returns the runner so calls can be chained.

    Args:
        options: Runner options, deep-merged over the defaults
                 (see web2os.config.loader.DEFAULT_OPTIONS).
        runtime: Browser runtime to open the window on. Defaults to the
                 process-wide runtime.
    """

    def __init__(self, options: dict | None = None, runtime: BrowserRuntime | None = None):
        self.options = resolve_options(options)
        self.runtime = runtime if runtime is not None else get_runtime()

        self.tasks: deque[Step] = deque()
        self.state = DrainState.IDLE
        self.window = None
        self.task: Optional[asyncio.Task] = None

        self._draining = False
        self._host_tasks: set[asyncio.Task] = set()

        self.name = self.options.get("name") or f"runner-{id(self):x}"

        self.completion_logger = None
        if self.options.get("log_dir"):
            self.completion_logger = CompletionLogger(self.options["log_dir"], runner_name=self.name)

    @property
    def is_draining(self) -> bool:
        return self._draining or (self.task is not None and not self.task.done())

    # ------------------------------------------------------------------
    # Queueing
    # ------------------------------------------------------------------

    def add_open(self, url: str) -> "TaskRunner":
        """Queue a navigation of the window to url (http(s):// or file://)."""
        self.tasks.append(Step.open(url))
        return self

    def add_run_in_page(self, code: str, wrap_as_promise: bool = False) -> "TaskRunner":
        """
        Queue JavaScript to run in the page.

        With wrap_as_promise, code is the source of a (resolve, reject)
        function and runs as the executor of a new Promise. Otherwise it is
        evaluated as is.
        """
        self.tasks.append(Step.run_in_page(code, wrap_as_promise=wrap_as_promise))
        return self

    def add_run_in_host(self, callback: Callable) -> "TaskRunner":
        """
        Queue a Python callable to run in this process.

        The callback is called as callback(resolve, reject), plus the
        previous step's value as a third argument when there is one. It may
        be a plain function or a coroutine function.
        """
        self.tasks.append(Step.run_in_host(callback))
        return self

    def open(self, url: str) -> "TaskRunner":
        return self.add_open(url)

    def on_web(self, code: str, is_sync: bool = False) -> "TaskRunner":
        """Queue page code; by default it is wrapped in a Promise, is_sync=True runs it bare."""
        return self.add_run_in_page(code, wrap_as_promise=not is_sync)

    def on_os(self, callback: Callable) -> "TaskRunner":
        return self.add_run_in_host(callback)

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def run(self, on_complete: Optional[Callable] = None) -> "TaskRunner":
        """
        Start draining the queue.

        Inside a running event loop the drain is scheduled as a task and
        this returns at once. From plain synchronous code a new loop runs
        the drain to completion before returning.
        """
        if self.is_draining:
            raise RunnerBusyError("A drain is already in progress for this runner")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            asyncio.run(self._drain(on_complete))
            return self

        self.task = loop.create_task(self._drain(on_complete))
        self.task.add_done_callback(self._drain_task_done)
        return self

    async def drain(self, on_complete: Optional[Callable] = None) -> Any:
        """Drain the queue and return the last data value."""
        if self.is_draining:
            raise RunnerBusyError("A drain is already in progress for this runner")
        return await self._drain(on_complete)

    def _drain_task_done(self, task: asyncio.Task):
        if task.cancelled():
            logger.warning("Drain task cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Drain failed: {error}", exc_info=error)

    async def _drain(self, on_complete: Optional[Callable]) -> Any:
        self._draining = True
        data = None
        aborted = False

        if self.completion_logger:
            self.completion_logger.start_drain(queued_steps=len(self.tasks))

        try:
            await self.runtime.ready()
            self.window = await self.runtime.create_window(self._window_options())
            self.state = DrainState.DISPATCHING
            logger.info(f"Draining {len(self.tasks)} queued step(s)")

            while self.tasks:
                step = self.tasks.popleft()
                logger.debug(f"Dispatching {step.describe()}")
                if self.completion_logger:
                    self.completion_logger.start_step(step)

                fulfilled, data = await self._dispatch(step, data)

                if fulfilled:
                    if self.completion_logger:
                        status = StepStatus.DISPATCHED if step.kind == StepKind.OPEN else StepStatus.FULFILLED
                        self.completion_logger.end_step(status)
                    continue

                if self.completion_logger:
                    self.completion_logger.end_step(StepStatus.REJECTED, error=data)
                if self._abort_task(data):
                    aborted = True
                    break
        except BaseException:
            aborted = True
            raise
        finally:
            if self.window is not None:
                await self.window.close()
                self.window = None
            self.state = DrainState.ABORTED if aborted else DrainState.DONE
            if self.completion_logger:
                self.completion_logger.end_drain(self.state)
            self._draining = False

        logger.info(f"Drain finished ({self.state.value})")

        if on_complete is not None:
            result = on_complete(data)
            if inspect.isawaitable(result):
                await result

        return data

    def _window_options(self) -> dict:
        window_options = dict(self.options.get("browser") or {})
        if self.options.get("open_dev_tools"):
            window_options["devtools"] = True
        return window_options

    def _abort_task(self, error: Any) -> bool:
        """Handle a rejected step. Returns True when the queue was aborted."""
        logger.error(f"Step rejected: {error}")

        on_error = self.options.get("on_error")
        if callable(on_error):
            try:
                on_error(error)
            except Exception as e:
                logger.error(f"on_error handler failed: {e}", exc_info=True)

        if self.options.get("abort_on_rejected_promise", True):
            if self.tasks:
                logger.warning(f"Aborting queue, dropping {len(self.tasks)} step(s)")
            self.tasks.clear()
            return True
        return False

    async def _dispatch(self, step: Step, data: Any) -> tuple[bool, Any]:
        """Run one step. Returns (fulfilled, value)."""
        if step.kind == StepKind.OPEN:
            # Navigation is not awaited; the next step may race the page load
            self.window.load_url(step.url)
            if self.options.get("open_dev_tools"):
                self.window.open_dev_tools()
            return True, None

        if step.kind == StepKind.ON_WEB:
            return await self._run_in_page(step)

        return await self._run_in_host(step, data)

    async def _run_in_page(self, step: Step) -> tuple[bool, Any]:
        expression = step.code
        if step.wrap_as_promise and isinstance(step.code, str):
            expression = f"new Promise({step.code})"

        try:
            return True, await self.window.execute_javascript(expression)
        except ScriptRejection as e:
            return False, e.reason

    async def _run_in_host(self, step: Step, data: Any) -> tuple[bool, Any]:
        settled = asyncio.get_running_loop().create_future()

        def resolve(value=None):
            if not settled.done():
                settled.set_result((True, value))

        def reject(error=None):
            if not settled.done():
                settled.set_result((False, error))

        def body_done(task: asyncio.Task):
            self._host_tasks.discard(task)
            if not task.cancelled() and task.exception() is not None:
                reject(task.exception())

        args = (resolve, reject) if data is None else (resolve, reject, data)
        try:
            result = step.callback(*args)
        except Exception as e:
            reject(e)
        else:
            if inspect.isawaitable(result):
                body = asyncio.ensure_future(result)
                self._host_tasks.add(body)
                body.add_done_callback(body_done)

        return await settled


def create(options: dict | None = None, runtime: BrowserRuntime | None = None) -> TaskRunner:
    """
    Create a task runner.

    Args:
        options: abort_on_rejected_promise (default True), open_dev_tools
                 (default False), on_error, log_dir, name (used in the
                 drain log file name) and browser window
                 options (type, width, height, show, timeout, cdp_port).
        runtime: Browser runtime override, mainly for tests.

    Returns:
        A TaskRunner whose queueing methods are chainable.
    """
    return TaskRunner(options, runtime=runtime)
