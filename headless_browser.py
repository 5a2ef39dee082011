from __future__ import annotations

import asyncio
import glob
import importlib.util
import logging
import os
import subprocess
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import finder_config as config
from finder_models import BrowserLaunchError

LOG = logging.getLogger("headless_browser")

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-blink-features=AutomationControlled",
]
BLOCKED_RESOURCES = {"image", "media", "font", "stylesheet"}


def headless_available() -> bool:
    return importlib.util.find_spec("playwright") is not None


def _has_chromium_executable(cache_dir: str) -> bool:
    if not cache_dir:
        return False
    patterns = (
        "chromium-*/chrome-linux/headless_shell",
        "chromium-*/chrome-linux/chrome",
        "chromium_headless_shell-*/chrome-linux/headless_shell",
    )
    for pattern in patterns:
        if glob.glob(os.path.join(cache_dir, pattern)):
            return True
    return False


def chromium_available(cache_dir: Optional[str] = None) -> bool:
    return _has_chromium_executable(cache_dir or config.HEADLESS_BROWSER_CACHE)


def _install_chromium(cache_dir: str) -> bool:
    env = os.environ.copy()
    if cache_dir:
        env.setdefault("PLAYWRIGHT_BROWSERS_PATH", cache_dir)
    cmd = [sys.executable, "-m", "playwright", "install", "chromium"]
    try:
        result = subprocess.run(cmd, env=env, check=False, capture_output=True, text=True)
    except OSError as exc:
        LOG.warning("HEADLESS_BROWSER_INSTALL_FAILED err=%s", exc)
        return False
    if result.returncode != 0:
        LOG.warning(
            "HEADLESS_BROWSER_INSTALL_FAILED code=%s stderr=%s",
            result.returncode,
            (result.stderr or "").strip(),
        )
        return False
    return _has_chromium_executable(cache_dir)


class BrowserResource:
    """A lazily launched Chromium shared by every fetch and search.

    ``acquire`` starts the browser on first use and reuses it afterwards; the
    launch is guarded by a lock so concurrent callers never start two. Each
    caller works in its own context via :meth:`page`, which always closes the
    page and context on the way out. ``shutdown`` is the only way the browser
    goes away.
    """

    def __init__(self, *, headless: bool = True, launch_timeout_ms: int = config.RENDER_TIMEOUT_MS * 2):
        self.headless = headless
        self.launch_timeout_ms = launch_timeout_ms
        self._playwright: Any = None
        self._browser: Any = None
        self._lock = asyncio.Lock()

    @property
    def is_live(self) -> bool:
        return self._browser is not None

    async def acquire(self) -> Any:
        if self._browser is not None:
            return self._browser
        async with self._lock:
            if self._browser is not None:
                return self._browser
            if not headless_available():
                raise BrowserLaunchError("playwright is not installed")
            if config.HEADLESS_BROWSER_DOWNLOAD and not chromium_available():
                os.environ.setdefault("PLAYWRIGHT_BROWSERS_PATH", config.HEADLESS_BROWSER_CACHE)
                LOG.info("HEADLESS_BROWSER_DOWNLOAD starting cache=%s", config.HEADLESS_BROWSER_CACHE)
                if not await asyncio.to_thread(_install_chromium, config.HEADLESS_BROWSER_CACHE):
                    LOG.warning("HEADLESS_BROWSER_DOWNLOAD_FAILED cache=%s", config.HEADLESS_BROWSER_CACHE)
            from playwright.async_api import async_playwright

            pw = None
            try:
                pw = await async_playwright().start()
                browser = await pw.chromium.launch(
                    headless=self.headless,
                    args=LAUNCH_ARGS,
                    timeout=self.launch_timeout_ms,
                )
            except Exception as exc:
                if pw is not None:
                    try:
                        await pw.stop()
                    except Exception as stop_exc:
                        LOG.debug("HEADLESS_STOP_IGNORED err=%s", stop_exc)
                LOG.error("HEADLESS_LAUNCH_FAILED err=%s", exc)
                raise BrowserLaunchError(f"headless browser failed to launch: {exc}") from exc
            self._playwright = pw
            self._browser = browser
            LOG.info("HEADLESS_BROWSER_READY headless=%s", self.headless)
            return browser

    async def release(self, context: Any) -> None:
        if context is None:
            return
        try:
            await context.close()
        except Exception as exc:
            LOG.debug("HEADLESS_CONTEXT_CLOSE_IGNORED err=%s", exc)

    @asynccontextmanager
    async def page(
        self,
        *,
        user_agent: str,
        viewport: Optional[Dict[str, int]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        timeout_ms: int = config.RENDER_TIMEOUT_MS,
        block_resources: bool = False,
    ) -> AsyncIterator[Any]:
        browser = await self.acquire()
        context = None
        page = None
        route_enabled = False
        try:
            context = await browser.new_context(
                user_agent=user_agent,
                viewport=viewport or {"width": 1280, "height": 720},
                extra_http_headers={k: v for k, v in (extra_headers or {}).items() if v},
            )
            page = await context.new_page()
            page.set_default_timeout(timeout_ms)
            page.set_default_navigation_timeout(timeout_ms)
            if block_resources:
                async def _route_handler(route) -> None:
                    try:
                        if route.request.resource_type in BLOCKED_RESOURCES:
                            await route.abort()
                        else:
                            await route.continue_()
                    except Exception as exc:
                        # Route callbacks can still fire while the context is closing.
                        LOG.debug("HEADLESS_ROUTE_IGNORED err=%s", exc)

                await page.route("**/*", _route_handler)
                route_enabled = True
            yield page
        finally:
            if page is not None and route_enabled:
                try:
                    await page.unroute_all(behavior="ignoreErrors")
                except Exception as exc:
                    LOG.debug("HEADLESS_UNROUTE_IGNORED err=%s", exc)
            if page is not None:
                try:
                    await page.close()
                except Exception as exc:
                    LOG.debug("HEADLESS_PAGE_CLOSE_IGNORED err=%s", exc)
            await self.release(context)

    async def shutdown(self) -> None:
        async with self._lock:
            browser, pw = self._browser, self._playwright
            self._browser = None
            self._playwright = None
            if browser is not None:
                try:
                    await browser.close()
                except Exception as exc:
                    LOG.debug("HEADLESS_BROWSER_CLOSE_IGNORED err=%s", exc)
            if pw is not None:
                try:
                    await pw.stop()
                except Exception as exc:
                    LOG.debug("HEADLESS_STOP_IGNORED err=%s", exc)
            if browser is not None:
                LOG.info("HEADLESS_BROWSER_CLOSED")
