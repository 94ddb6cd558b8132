"""
Browser runtime for web2os.

Owns the Playwright driver and the browsers launched through it. The
runtime becomes ready lazily, hands out windows (one browser context with
one page each) and shuts Playwright down again once its last window has
been closed.
"""

import asyncio
import logging
import os
import platform
import socket

from playwright.async_api import async_playwright

from web2os.browser.window import BrowserWindow

logger = logging.getLogger(__name__)

DEFAULT_CDP_PORT = 9222
DEFAULT_TIMEOUT = 30000

# Window options consumed here; everything else goes to Browser.new_context()
WINDOW_KEYS = {"type", "width", "height", "show", "timeout", "cdp_port", "devtools"}

# Installed Google Chrome, stable channel first
CHROME_PATHS = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",  # macOS
    os.path.expanduser("~/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"),
    "/usr/bin/google-chrome",  # Linux
    "/usr/bin/google-chrome-stable",
    "C:\\Program Files\\Google\\Chrome\\Application\\chrome.exe",  # Windows
    "C:\\Program Files (x86)\\Google\\Chrome\\Application\\chrome.exe",
    # Chrome Canary
    "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
    "/usr/bin/google-chrome-canary",
    "/usr/bin/google-chrome-unstable",
]


def find_chrome() -> str | None:
    """Find Chrome installation path."""
    for path in CHROME_PATHS:
        if os.path.exists(path):
            return path
    return None


def is_cdp_available(port: int = DEFAULT_CDP_PORT) -> bool:
    """Check if Chrome with debugging port is already running."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    result = sock.connect_ex(("127.0.0.1", port))
    sock.close()
    return result == 0


def wants_headless(options: dict) -> bool:
    """Headless when the window is hidden or no display is available."""
    if not options.get("show", True):
        return True
    display = os.environ.get("DISPLAY", "")
    return not display and platform.system() not in ("Darwin", "Windows")


class BrowserRuntime:
    """
    Process-wide bridge to Playwright.

    All Playwright objects belong to the event loop they were created on;
    when the runtime is used from a new loop it starts over.
    """

    def __init__(self, quit_when_all_windows_closed: bool = True):
        self.quit_when_all_windows_closed = quit_when_all_windows_closed
        self._loop = None
        self._lock = None
        self._playwright = None
        self._browsers: dict[tuple, object] = {}
        self.windows: set[BrowserWindow] = set()

    @property
    def is_ready(self) -> bool:
        return self._playwright is not None

    def _bind_loop(self):
        loop = asyncio.get_running_loop()
        if loop is not self._loop:
            if self._loop is not None:
                logger.debug("Event loop changed, discarding previous Playwright state")
            self._loop = loop
            self._lock = asyncio.Lock()
            self._playwright = None
            self._browsers = {}
            self.windows = set()

    async def _start(self):
        if self._playwright is None:
            self._playwright = await async_playwright().start()
            logger.info("Browser runtime ready")

    async def ready(self) -> "BrowserRuntime":
        """Wait until Playwright is running."""
        self._bind_loop()
        async with self._lock:
            await self._start()
        return self

    async def create_window(self, options: dict) -> BrowserWindow:
        """
        Open a new window.

        Args:
            options: Window options (type, width, height, show, timeout,
                     cdp_port, devtools). Unknown keys are passed to
                     Browser.new_context().

        Returns:
            BrowserWindow registered with this runtime
        """
        self._bind_loop()
        async with self._lock:
            await self._start()
            browser = await self._browser_for(options)

            context_kwargs = {k: v for k, v in options.items() if k not in WINDOW_KEYS}
            context_kwargs.setdefault(
                "viewport",
                {"width": options.get("width", 800), "height": options.get("height", 600)},
            )
            context = await browser.new_context(**context_kwargs)
            context.set_default_timeout(options.get("timeout", DEFAULT_TIMEOUT))
            page = await context.new_page()

            window = BrowserWindow(self, context, page, options)
            self.windows.add(window)
            logger.debug(f"Window opened ({len(self.windows)} open)")
            return window

    async def _browser_for(self, options: dict):
        browser_type = options.get("type", "chromium").lower()
        headless = wants_headless(options)
        devtools = bool(options.get("devtools")) and not headless
        key = (browser_type, headless, devtools, options.get("cdp_port"))

        browser = self._browsers.get(key)
        if browser is not None and browser.is_connected():
            return browser

        if browser_type == "cdp":
            browser = await self._connect_cdp(options.get("cdp_port", DEFAULT_CDP_PORT))
        else:
            browser = await self._launch(browser_type, headless, devtools)

        self._browsers[key] = browser
        return browser

    async def _connect_cdp(self, port: int):
        """Connect to Chrome via CDP (Chrome DevTools Protocol)."""
        cdp_url = f"http://127.0.0.1:{port}"
        if not is_cdp_available(port):
            raise RuntimeError(
                f"Chrome not running on port {port}. "
                f"Launch it with: chrome --remote-debugging-port={port}"
            )

        try:
            browser = await self._playwright.chromium.connect_over_cdp(cdp_url)
            logger.info(f"Connected to Chrome via CDP ({cdp_url})")
        except Exception as e:
            logger.error(f"Failed to connect to Chrome: {e}")
            raise
        return browser

    async def _launch(self, browser_type: str, headless: bool, devtools: bool):
        launch_kwargs = {"headless": headless}

        if browser_type == "chrome":
            chrome_path = find_chrome()
            if not chrome_path:
                raise RuntimeError("Chrome not found. Please install Chrome or use type 'chromium'")
            launch_kwargs["executable_path"] = chrome_path
            browser_instance = self._playwright.chromium
        elif browser_type in ("firefox", "webkit"):
            browser_instance = getattr(self._playwright, browser_type)
        else:
            if browser_type != "chromium":
                logger.warning(f"Unknown browser type '{browser_type}', using chromium")
            browser_type = "chromium"
            browser_instance = self._playwright.chromium

        if devtools:
            if browser_instance is self._playwright.chromium:
                launch_kwargs["args"] = ["--auto-open-devtools-for-tabs"]
            else:
                logger.warning(f"Developer tools are not supported for {browser_type}")

        logger.info(f"Launching {browser_type} (headless={headless})")
        return await browser_instance.launch(**launch_kwargs)

    async def window_closed(self, window: BrowserWindow):
        """Forget a closed window; quit once none are left."""
        self._bind_loop()
        async with self._lock:
            self.windows.discard(window)
            if not self.windows and self.quit_when_all_windows_closed:
                await self._quit()

    async def quit(self):
        """Close every browser and stop Playwright."""
        self._bind_loop()
        async with self._lock:
            await self._quit()

    async def _quit(self):
        for browser in self._browsers.values():
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
        self._browsers = {}

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
            self._playwright = None
            logger.info("Browser runtime stopped")


_default_runtime: BrowserRuntime | None = None


def get_runtime() -> BrowserRuntime:
    """Return the process-wide runtime, creating it on first use."""
    global _default_runtime
    if _default_runtime is None:
        _default_runtime = BrowserRuntime()
    return _default_runtime
