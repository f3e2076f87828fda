"""
In-memory stand-ins for the Playwright browser, the launch service and the
alarm scheduler.
"""

import threading


class FakePage:
    def __init__(self, url_map, user_agent=None):
        self.url_map = url_map
        self.user_agent = user_agent
        self.url = None
        self.goto_calls = []
        self.closed = False
        self.thread = threading.current_thread()

    def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if url not in self.url_map:
            raise TimeoutError(f"Navigation timeout for {url}")
        self.url = url

    def content(self):
        return self.url_map[self.url]["html"]

    def eval_on_selector_all(self, selector, script):
        return list(self.url_map[self.url].get("links", []))

    def screenshot(self, full_page=False):
        return b"\x89PNG" + self.url.encode()

    def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, url_map=None):
        self.url_map = url_map or {}
        self.connected = True
        self.pages = []
        self.close_calls = 0

    def is_connected(self):
        return self.connected

    def new_page(self, **kwargs):
        page = FakePage(self.url_map, user_agent=kwargs.get("user_agent"))
        self.pages.append(page)
        return page

    def close(self):
        self.close_calls += 1
        self.connected = False


class FakeLauncher:
    """
    launch() pops from `outcomes`: an Exception instance is raised, anything
    else is returned. When outcomes is exhausted a fresh FakeBrowser is returned.
    """

    def __init__(self, outcomes=None, url_map=None, orphans=None):
        self.outcomes = list(outcomes or [])
        self.url_map = url_map or {}
        self.orphans = dict(orphans or {})
        self.launch_calls = 0
        self.session_calls = 0
        self.stopped = False

    def launch(self):
        self.launch_calls += 1
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return FakeBrowser(self.url_map)

    def sessions(self):
        self.session_calls += 1
        return list(self.orphans)

    def connect(self, session_id):
        orphan = self.orphans[session_id]
        if isinstance(orphan, Exception):
            raise orphan
        return orphan

    def stop(self):
        self.stopped = True


class FakeAlarm:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    def __init__(self):
        self.pending = []
        self.scheduled = 0

    def schedule(self, delay, callback):
        alarm = FakeAlarm(delay, callback)
        self.pending.append(alarm)
        self.scheduled += 1
        return alarm

    def fire(self):
        alarm = self.pending.pop(0)
        alarm.callback()
        return alarm


class InlineRenderThread:
    """Runs browser calls on the caller's thread."""

    def call(self, fn, *args, **kwargs):
        return fn(*args, **kwargs)

    def stop(self):
        pass


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
