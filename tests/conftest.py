"""Shared fixtures: an in-memory stand-in for the Playwright runtime."""

import pytest

from web2os.config.loader import BROWSER_ENV_VAR, CONFIG_ENV_VAR, HEADLESS_ENV_VAR


class FakeWindow:
    """Records what the runner asks of its window."""

    def __init__(self, runtime, options):
        self.runtime = runtime
        self.options = options
        self.closed = False
        self.dev_tools_calls = 0

    def load_url(self, url):
        self.runtime.events.append(("open", url))

    def open_dev_tools(self):
        self.dev_tools_calls += 1

    async def execute_javascript(self, expression):
        self.runtime.events.append(("on_web", expression))
        return self.runtime.scripts(expression)

    async def close(self):
        self.closed = True
        self.runtime.events.append(("close",))
        await self.runtime.window_closed(self)


class FakeRuntime:
    """
    Runtime double for TaskRunner tests.

    `scripts` maps an evaluated expression to its result; raise
    ScriptRejection from it to simulate a rejected page script.
    """

    def __init__(self):
        self.events = []
        self.windows = []
        self.ready_calls = 0
        self.scripts = lambda expression: None
        self.create_error = None

    async def ready(self):
        self.ready_calls += 1
        self.events.append(("ready",))
        return self

    async def create_window(self, options):
        if self.create_error is not None:
            raise self.create_error
        window = FakeWindow(self, options)
        self.windows.append(window)
        self.events.append(("window",))
        return window

    async def window_closed(self, window):
        pass


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep WEB2OS_* variables from the outer environment out of tests."""
    for name in (CONFIG_ENV_VAR, HEADLESS_ENV_VAR, BROWSER_ENV_VAR):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_runtime():
    return FakeRuntime()
