"""A single controlled browser window: one Playwright context with one page."""

import asyncio
import logging

from playwright.async_api import Error as PlaywrightError

from web2os.tasks.base import ScriptRejection

logger = logging.getLogger(__name__)

# Settles the expression inside the page so a rejected value reaches Python
# as is, without the API name Playwright puts in front of its error messages.
SETTLE_TEMPLATE = """Promise.resolve().then(() => (
{expression}
)).then(
    (value) => ({{ok: true, value}}),
    (error) => ({{ok: false, error: error instanceof Error ? error.message : error}})
)"""


class BrowserWindow:
    """
    Window handed out by BrowserRuntime.create_window().

    Args:
        runtime: Owning runtime, told when the window closes.
        context: Playwright browser context backing the window.
        page: The window's only page.
        options: Window options the window was created with.
    """

    def __init__(self, runtime, context, page, options: dict):
        self.runtime = runtime
        self.context = context
        self.page = page
        self.options = options
        self.closed = False
        self.dev_tools_opened = False
        self._navigations: set[asyncio.Task] = set()

    @property
    def pending_navigations(self) -> int:
        return len(self._navigations)

    def load_url(self, url: str) -> asyncio.Task:
        """Start navigating to url without waiting for the page to load."""
        logger.info(f"Navigating to {url}")
        task = asyncio.ensure_future(self.page.goto(url))
        self._navigations.add(task)
        task.add_done_callback(self._navigation_done)
        return task

    def _navigation_done(self, task: asyncio.Task):
        self._navigations.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"Navigation failed: {error}")

    def open_dev_tools(self):
        """Mark the inspector as open for this window's page."""
        if not self.options.get("devtools"):
            logger.warning(
                "Developer tools are attached at browser launch; "
                "set open_dev_tools=True when creating the runner"
            )
            return
        if not self.dev_tools_opened:
            logger.debug("Developer tools open for window")
        self.dev_tools_opened = True

    async def execute_javascript(self, expression: str):
        """
        Evaluate expression in the page and return its settled value.

        The code is evaluated as a single expression and never called, so a
        function literal settles to the function itself instead of being
        invoked. A trailing semicolon is ignored.

        Raises:
            ScriptRejection: the script threw, its promise rejected, or the
                page could not evaluate it.
        """
        if not isinstance(expression, str):
            raise ScriptRejection(f"Page code must be a string, got {type(expression).__name__}")
        body = expression.strip().rstrip(";")
        try:
            result = await self.page.evaluate(SETTLE_TEMPLATE.format(expression=body))
        except PlaywrightError as e:
            # Syntax errors and closed pages never reach the settle handlers
            raise ScriptRejection(e.message) from e

        if not result.get("ok"):
            raise ScriptRejection(result.get("error"))
        return result.get("value")

    async def close(self):
        """Close the window and release it from the runtime."""
        if self.closed:
            return
        self.closed = True

        for task in list(self._navigations):
            task.cancel()

        try:
            await self.context.close()
            logger.info("Window closed")
        except Exception as e:
            logger.warning(f"Error closing window: {e}")

        await self.runtime.window_closed(self)
