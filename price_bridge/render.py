# render.py - headless Chrome render stage (Selenium)
#
# One driver per process, created on first use under a lock and reused.
# A WebDriver session is not thread-safe, so renders are serialized; each
# render gets its own tab which is always closed afterwards.

import logging
import threading
import time
from typing import Callable, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from . import config
from .errors import RenderUnavailable

logger = logging.getLogger("price_bridge.render")

# Cookie banners: accept-button wording (lowercase)
CONSENT_WORDS = [
    "alle akzeptieren",
    "alle cookies akzeptieren",
    "akzeptieren",
    "zustimmen",
    "einverstanden",
    "accept all",
    "accept cookies",
    "accept",
    "i agree",
    "agree",
    "allow all",
    "tout accepter",
    "accepter",
    "aceptar",
    "accetta",
    "accetto",
    "ok",
]
MAX_CONSENT_CLICKS = 3

FIND_CONSENT_JS = """
const words = arguments[0];
const limit = arguments[1];
const nodes = document.querySelectorAll('button, a, [role="button"], input[type="button"], input[type="submit"]');
return Array.from(nodes).filter(el => {
  const t = (el.innerText || el.value || '').trim().toLowerCase();
  if (!t || t.length > 40) return false;
  return words.some(w => t === w || t.startsWith(w + ' '));
}).slice(0, limit);
"""

DOM_READY_STATES = ("interactive", "complete")
MIN_WAIT_SECONDS = 0.1


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


def chrome_options() -> Options:
    """Headless Chrome tuned for small containers."""
    opts = Options()
    opts.add_argument("--headless=new")
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--disable-gpu")
    opts.add_argument("--disable-extensions")
    opts.add_argument("--window-size=1280,1024")
    opts.add_argument("--disable-background-timer-throttling")
    opts.add_argument("--disable-renderer-backgrounding")
    opts.add_argument("--disable-features=TranslateUI")
    opts.add_argument("--lang=de-DE")
    opts.add_argument(f"--user-agent={config.USER_AGENT}")
    # DOMContentLoaded is enough; the settle delay covers client rendering
    opts.page_load_strategy = "eager"
    if config.CHROME_BINARY:
        opts.binary_location = config.CHROME_BINARY
    return opts


def create_driver() -> webdriver.Chrome:
    service = Service(ChromeDriverManager().install())
    return webdriver.Chrome(service=service, options=chrome_options())


def dismiss_consent(driver) -> int:
    """Best-effort click on cookie "accept" controls; returns the number of clicks that worked."""
    try:
        elements = driver.execute_script(FIND_CONSENT_JS, CONSENT_WORDS, MAX_CONSENT_CLICKS) or []
    except WebDriverException as e:
        logger.debug("[render] consent lookup failed: %s", e)
        return 0
    clicked = 0
    for el in elements:
        try:
            el.click()
            clicked += 1
            break
        except WebDriverException:
            try:
                driver.execute_script("arguments[0].click();", el)
                clicked += 1
                break
            except WebDriverException as e:
                logger.debug("[render] consent click ignored: %s", e)
    return clicked


class RenderEngine:
    """Lazily started headless browser shared by all requests of the process."""

    def __init__(self, driver_factory: Callable[[], object] = create_driver):
        self._driver_factory = driver_factory
        self._driver = None
        self._init_lock = threading.Lock()
        self._render_lock = threading.Lock()

    @property
    def started(self) -> bool:
        return self._driver is not None

    def _ensure_driver(self):
        if self._driver is not None:
            return self._driver
        with self._init_lock:
            if self._driver is None:
                logger.info("[render] starting headless Chrome")
                try:
                    self._driver = self._driver_factory()
                except (WebDriverException, OSError, ValueError) as e:
                    raise RenderUnavailable(f"Headless browser failed to start: {e}") from e
            return self._driver

    def _discard(self, driver) -> None:
        with self._init_lock:
            if self._driver is driver:
                self._driver = None
        try:
            driver.quit()
        except WebDriverException:
            pass

    def render(
        self,
        url: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[str]:
        """Return the rendered DOM of url, or None when the stage fails or is cancelled.

        timeout bounds the whole stage: waiting for the browser, loading the
        page and the settle delay all share one deadline.
        """
        deadline = time.monotonic() + (timeout or config.RENDER_TIMEOUT)
        if cancel is not None and cancel.is_set():
            return None
        if not self._render_lock.acquire(timeout=_remaining(deadline)):
            logger.warning("[render] busy, gave up waiting for %s", url)
            return None
        try:
            try:
                driver = self._ensure_driver()
            except RenderUnavailable as e:
                logger.warning("[render] %s", e)
                return None
            try:
                return self._render_in_tab(driver, url, deadline, cancel)
            except TimeoutException as e:
                logger.warning("[render] timeout loading %s: %s", url, e.msg)
                return None
            except WebDriverException as e:
                logger.warning("[render] browser error for %s, restarting next time: %s", url, e.msg)
                self._discard(driver)
                return None
        finally:
            self._render_lock.release()

    def _render_in_tab(self, driver, url: str, deadline: float, cancel: Optional[threading.Event]) -> Optional[str]:
        if _remaining(deadline) <= 0:
            logger.warning("[render] no time left for %s", url)
            return None
        origin = driver.current_window_handle
        driver.switch_to.new_window("tab")
        try:
            driver.set_page_load_timeout(_remaining(deadline))
            driver.get(url)
            WebDriverWait(driver, max(_remaining(deadline), MIN_WAIT_SECONDS)).until(
                lambda d: d.execute_script("return document.readyState") in DOM_READY_STATES
            )
            if cancel is not None and cancel.is_set():
                return None
            clicks = dismiss_consent(driver)
            logger.debug("[render] consent clicks=%d", clicks)
            time.sleep(min(config.RENDER_SETTLE_SECONDS, _remaining(deadline)))
            if cancel is not None and cancel.is_set():
                return None
            return driver.page_source
        finally:
            try:
                driver.close()
                driver.switch_to.window(origin)
            except WebDriverException as e:
                logger.debug("[render] tab cleanup failed: %s", e)

    def close(self) -> None:
        with self._init_lock:
            driver, self._driver = self._driver, None
        if driver is not None:
            logger.info("[render] shutting down headless Chrome")
            try:
                driver.quit()
            except WebDriverException:
                pass


_engine: Optional[RenderEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> RenderEngine:
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = RenderEngine()
    return _engine


def shutdown_engine() -> None:
    global _engine
    with _engine_lock:
        engine, _engine = _engine, None
    if engine is not None:
        engine.close()


def render_page(url: str, cancel: Optional[threading.Event] = None) -> Optional[str]:
    return get_engine().render(url, cancel=cancel)
