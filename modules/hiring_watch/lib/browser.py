from __future__ import annotations

import logging
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .config import DEFAULT_USER_AGENT
from .errors import DriverUnavailable, SessionLoadFailed
from .models import BrowserStorage

LOG = logging.getLogger(__name__)

# Flags that let Chromium run inside containers without a user namespace.
CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
)

_READ_STORAGE_JS = """
() => {
  const dump = (store) => {
    const out = {};
    for (let i = 0; i < store.length; i++) {
      const key = store.key(i);
      out[key] = store.getItem(key);
    }
    return out;
  };
  return { local: dump(window.localStorage), session: dump(window.sessionStorage) };
}
"""


class HeadlessSessionDriver:
    """
    One headless Chromium session: start, load the target page, read storage,
    stop. Not thread safe; create, use and stop it from a single thread.
    """

    def __init__(
        self,
        url: str,
        *,
        headless: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        navigation_timeout_seconds: float = 30.0,
        settle_seconds: float = 15.0,
    ):
        self.url = url
        self.headless = headless
        self.user_agent = user_agent
        self.navigation_timeout_ms = int(navigation_timeout_seconds * 1000)
        self.settle_ms = int(settle_seconds * 1000)
        self._pw: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    # ---- lifecycle ----
    def start(self) -> None:
        """Launch browser, isolated context and page. Raises DriverUnavailable."""
        try:
            self._pw = sync_playwright().start()
            self._browser = self._pw.chromium.launch(headless=self.headless, args=list(CHROMIUM_ARGS))
            self._context = self._browser.new_context(user_agent=self.user_agent)
            self._page = self._context.new_page()
        except PlaywrightError as e:
            self.stop()
            raise DriverUnavailable(f"Chromium could not be launched: {e}") from e
        LOG.debug("Browser started (headless=%s)", self.headless)

    def stop(self) -> None:
        """Release page, context, browser and runtime. Idempotent."""
        for name in ("_page", "_context", "_browser"):
            handle = getattr(self, name)
            setattr(self, name, None)
            if handle is None:
                continue
            try:
                handle.close()
            except PlaywrightError:
                LOG.debug("close %s swallow", name, exc_info=True)
        pw, self._pw = self._pw, None
        if pw is not None:
            try:
                pw.stop()
            except PlaywrightError:
                LOG.debug("playwright stop swallow", exc_info=True)

    def __enter__(self) -> HeadlessSessionDriver:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    # ---- session ----
    def load_session(self) -> None:
        """Navigate to the target and let the site's client code settle."""
        if self._page is None:
            raise SessionLoadFailed("browser not started")
        LOG.info("Navigating to %s", self.url)
        try:
            self._page.goto(self.url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise SessionLoadFailed(f"navigation timed out after {self.navigation_timeout_ms}ms") from e
        except PlaywrightError as e:
            raise SessionLoadFailed(f"navigation failed: {e}") from e
        if self.settle_ms > 0:
            LOG.debug("Waiting %dms for the page to populate storage", self.settle_ms)
            try:
                self._page.wait_for_timeout(self.settle_ms)
            except PlaywrightError as e:
                raise SessionLoadFailed(f"page lost while settling: {e}") from e

    def read_storage(self) -> BrowserStorage:
        if self._page is None:
            raise SessionLoadFailed("browser not started")
        try:
            dump = self._page.evaluate(_READ_STORAGE_JS) or {}
        except PlaywrightError as e:
            raise SessionLoadFailed(f"storage could not be read: {e}") from e
        return BrowserStorage(
            local={str(k): v for k, v in (dump.get("local") or {}).items() if isinstance(v, str)},
            session={str(k): v for k, v in (dump.get("session") or {}).items() if isinstance(v, str)},
        )
