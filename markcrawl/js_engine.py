"""
FILE DESCRIPTION: Dedicated hub for all headless browser operations.
KEY FUNCTIONS/CLASSES: BrowserManager, PlaywrightLauncher, RenderThread, ThreadingScheduler

A BrowserManager is owned by exactly one crawl actor. It lazily launches a
browser, retries with backoff while reclaiming orphaned sessions, reuses the
handle across tasks, and tears it down once the idle alarm has counted
KEEP_BROWSER_ALIVE_SECONDS without activity.
"""

import threading
import queue
import time
import uuid
from enum import Enum
from datetime import datetime, timezone

from playwright.sync_api import sync_playwright

from markcrawl.core import (
    JS_GOTO_TIMEOUT,
    BROWSER_MAX_RETRIES,
    KEEP_BROWSER_ALIVE_SECONDS,
    ALARM_INTERVAL_SECONDS,
    BROWSER_WS_ENDPOINT,
    USER_AGENT,
    setup_logger,
)
from markcrawl.errors import BrowserUnavailable
from markcrawl.models import RenderedPage

logger = setup_logger("markcrawl.js_engine")

_LINKS_SCRIPT = "els => els.map(e => e.href)"


class BrowserState(Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    RECLAIMING = "RECLAIMING"
    READY = "READY"


# === TIMER ===

class ThreadingScheduler:
    """
    Default alarm source. schedule() returns a handle exposing cancel().
    """
    def schedule(self, delay: float, callback):
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.name = "BrowserAlarm"
        timer.start()
        return timer


# === RENDER THREAD ===

class RenderRequest:
    def __init__(self, fn, args, kwargs):
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.result_queue = queue.Queue()

class RenderResult:
    def __init__(self, value=None, error=None):
        self.value = value
        self.error = error

class RenderThread:
    """
    FLOW: Owns one daemon thread -> Executes submitted callables strictly in order ->
    Hands results/errors back to the caller. Playwright's sync API is bound to the
    thread that started it, so every browser call goes through here.
    """
    def __init__(self, name="RenderWorker"):
        self.name = name
        self._request_queue = queue.Queue()
        self._init_lock = threading.Lock()
        self._thread = None

    def _loop(self):
        logger.info(f"[BROWSER] {self.name} started.")
        while True:
            req = self._request_queue.get()
            if req is None:  # Poison pill
                break
            try:
                value = req.fn(*req.args, **req.kwargs)
                req.result_queue.put(RenderResult(value=value))
            except Exception as e:
                req.result_queue.put(RenderResult(error=e))
        logger.info(f"[BROWSER] {self.name} stopped.")

    def _ensure_running(self):
        if self._thread and self._thread.is_alive():
            return
        with self._init_lock:
            if self._thread and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
            self._thread.start()

    def call(self, fn, *args, **kwargs):
        if self._thread is not None and threading.current_thread() is self._thread:
            return fn(*args, **kwargs)

        self._ensure_running()
        req = RenderRequest(fn, args, kwargs)
        self._request_queue.put(req)
        result = req.result_queue.get()
        if result.error:
            raise result.error
        return result.value

    def stop(self):
        if self._thread and self._thread.is_alive():
            self._request_queue.put(None)
            self._thread.join(timeout=5)


# === LAUNCH SERVICE ===

class PlaywrightLauncher:
    """
    Launch service backed by Playwright Chromium. Connects to a remote browser
    over CDP when ws_endpoint is set, launches a local headless browser otherwise.
    Tracks every browser it has handed out so that orphans can be reclaimed.
    """
    def __init__(self, ws_endpoint=BROWSER_WS_ENDPOINT, headless=True):
        self.ws_endpoint = ws_endpoint
        self.headless = headless
        self._playwright = None
        self._browsers = {}

    def _driver(self):
        if self._playwright is None:
            self._playwright = sync_playwright().start()
        return self._playwright

    def launch(self):
        chromium = self._driver().chromium
        if self.ws_endpoint:
            browser = chromium.connect_over_cdp(self.ws_endpoint)
        else:
            browser = chromium.launch(
                headless=self.headless,
                args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
            )
        session_id = str(uuid.uuid4())
        self._browsers[session_id] = browser
        browser.on("disconnected", lambda _: self._browsers.pop(session_id, None))
        return browser

    def sessions(self):
        return list(self._browsers)

    def connect(self, session_id):
        browser = self._browsers.get(session_id)
        if browser is None:
            raise LookupError(f"Unknown browser session {session_id}")
        return browser

    def stop(self):
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


# === BROWSER MANAGER ===

class BrowserManager:
    """
    FLOW: ensure_browser() reuses a connected handle or launches one (3 attempts,
    orphan reclaim + linear backoff between them) -> render()/screenshot() open a page,
    wait for network idle, read it and close the page -> keep_alive() zeroes the idle
    counter -> ensure_alarm() arms the recurring idle alarm once -> the alarm closes the
    browser after KEEP_BROWSER_ALIVE_SECONDS of inactivity.
    """
    def __init__(self, launcher=None, scheduler=None, sleep=time.sleep,
                 max_retries=BROWSER_MAX_RETRIES,
                 keep_alive_seconds=KEEP_BROWSER_ALIVE_SECONDS,
                 alarm_interval=ALARM_INTERVAL_SECONDS,
                 goto_timeout=JS_GOTO_TIMEOUT,
                 render_thread=None):
        self.launcher = launcher if launcher is not None else PlaywrightLauncher()
        self.scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self.sleep = sleep
        self.max_retries = max_retries
        self.keep_alive_seconds = keep_alive_seconds
        self.alarm_interval = alarm_interval
        self.goto_timeout = goto_timeout
        self._thread = render_thread if render_thread is not None else RenderThread()

        self.browser = None
        self.state = BrowserState.DISCONNECTED
        self.idle_seconds = 0
        self.last_activity_at = None
        self.launch_attempts = 0
        self._alarm = None
        self._closed = False
        self._lock = threading.Lock()

    # -------------------------------
    # CONNECTION
    # -------------------------------
    def ensure_browser(self):
        if self.browser is not None and self.browser.is_connected():
            return self.browser

        self.state = BrowserState.CONNECTING
        attempt = 0
        while attempt < self.max_retries:
            attempt += 1
            self.launch_attempts += 1
            try:
                self.browser = self.launcher.launch()
                self.state = BrowserState.READY
                logger.info(f"[BROWSER] Browser launched on attempt {attempt}.")
                return self.browser
            except Exception as e:
                logger.warning(f"[BROWSER] Could not start browser instance (attempt {attempt}/{self.max_retries}): {e}")
                self.state = BrowserState.RECLAIMING
                self._close_orphaned_sessions()
                self.state = BrowserState.CONNECTING
                if attempt < self.max_retries:
                    self.sleep(1 * attempt)

        self.browser = None
        self.state = BrowserState.DISCONNECTED
        raise BrowserUnavailable()

    def _close_orphaned_sessions(self):
        """
        Best effort: every error is logged and dropped.
        Returns the number of sessions closed.
        """
        closed = 0
        try:
            session_ids = self.launcher.sessions()
        except Exception as e:
            logger.warning(f"[BROWSER] Could not list browser sessions: {e}")
            return closed

        for session_id in session_ids:
            try:
                self.launcher.connect(session_id).close()
                closed += 1
            except Exception as e:
                logger.warning(f"[BROWSER] Could not close browser session {session_id}: {e}")
        if closed:
            logger.info(f"[BROWSER] Reclaimed {closed} orphaned session(s).")
        return closed

    def _close_browser(self):
        browser, self.browser = self.browser, None
        self.state = BrowserState.DISCONNECTED
        if browser is None:
            return
        try:
            browser.close()
            logger.info("[BROWSER] Browser closed.")
        except Exception as e:
            logger.warning(f"[BROWSER] Browser close failed: {e}")

    # -------------------------------
    # IDLE LIFECYCLE
    # -------------------------------
    def keep_alive(self):
        with self._lock:
            self.idle_seconds = 0
            self.last_activity_at = datetime.now(timezone.utc)

    @property
    def alarm_pending(self) -> bool:
        return self._alarm is not None

    def ensure_alarm(self):
        with self._lock:
            if self._closed or self._alarm is not None:
                return
            logger.debug("[BROWSER] Setting idle alarm.")
            self._alarm = self.scheduler.schedule(self.alarm_interval, self._on_alarm)

    def _on_alarm(self):
        with self._lock:
            self._alarm = None
            if self._closed:
                return
            self.idle_seconds += self.alarm_interval
            idle = self.idle_seconds
            if idle < self.keep_alive_seconds:
                logger.debug(f"[BROWSER] Kept alive for {idle}s. Extending lifespan.")
                self._alarm = self.scheduler.schedule(self.alarm_interval, self._on_alarm)
                return

        logger.info(f"[BROWSER] Exceeded idle life of {self.keep_alive_seconds}s. Closing browser.")
        self._thread.call(self._close_browser)

    # -------------------------------
    # PAGE OPERATIONS
    # -------------------------------
    def _open_page(self, url):
        browser = self.ensure_browser()
        page = browser.new_page(user_agent=USER_AGENT)
        try:
            page.goto(url, wait_until="networkidle", timeout=self.goto_timeout * 1000)
        except Exception:
            page.close()
            raise
        return page

    def _render(self, url):
        page = self._open_page(url)
        try:
            html = page.content()
            links = page.eval_on_selector_all("a[href]", _LINKS_SCRIPT)
            return RenderedPage(url=url, final_url=page.url, html=html, links=list(links or []))
        finally:
            page.close()

    def _screenshot(self, url):
        page = self._open_page(url)
        try:
            return page.screenshot(full_page=True)
        finally:
            page.close()

    def _run_task(self, fn, url):
        self.keep_alive()
        try:
            return self._thread.call(fn, url)
        finally:
            self.keep_alive()
            self.ensure_alarm()

    def render(self, url) -> RenderedPage:
        return self._run_task(self._render, url)

    def screenshot(self, url) -> bytes:
        return self._run_task(self._screenshot, url)

    def shutdown(self):
        with self._lock:
            # Alarms that fire after this point are no-ops
            self._closed = True
            alarm, self._alarm = self._alarm, None
        if alarm is not None:
            alarm.cancel()
        self._thread.call(self._close_browser)
        self._thread.call(self.launcher.stop)
        self._thread.stop()
