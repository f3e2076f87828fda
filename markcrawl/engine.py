"""
FILE DESCRIPTION: Crawl actor - the unit of work behind the crawler queue.
KEY FUNCTIONS/CLASSES: CrawlActor

FLOW per CrawlTask: depth gate -> render with network-idle wait -> select in-scope
child links (capped at limit) -> enqueue children at depth + 1 -> cache-aside markdown
-> enqueue one callback task. Browser and extraction failures propagate so the
queue's redelivery decides on the retry; children already enqueued stay enqueued.
"""

from markcrawl.core import SCRAPE_TTL, SCREENSHOT_TTL, setup_logger
from markcrawl.models import CrawlTask, CallbackTask, CrawlOutcome
from markcrawl.storage.cache import cache_key, SCRAPE, SCREENSHOT
from markcrawl.url_utils import select_child_links

logger = setup_logger("markcrawl.engine")


class CrawlActor:
    """
    Processes one task at a time. The BrowserManager it holds is never shared
    with another actor.
    """

    def __init__(self, browser, extractor, cache, task_queue, callback_queue,
                 scrape_ttl=SCRAPE_TTL, screenshot_ttl=SCREENSHOT_TTL):
        self.browser = browser
        self.extractor = extractor
        self.cache = cache
        self.task_queue = task_queue
        self.callback_queue = callback_queue
        self.scrape_ttl = scrape_ttl
        self.screenshot_ttl = screenshot_ttl

    # -------------------------------
    # CACHE HELPERS
    # -------------------------------
    def _cache_get(self, key):
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning(f"[CACHE] Read failed for {key}: {e}")
            return None

    def _cache_put(self, key, artifact, ttl):
        try:
            self.cache.put(key, artifact, ttl)
        except Exception as e:
            logger.warning(f"[CACHE] Write failed for {key}: {e}")

    # -------------------------------
    # CRAWL
    # -------------------------------
    def process(self, task: CrawlTask) -> CrawlOutcome:
        outcome = CrawlOutcome(url=task.current_url)
        if task.is_beyond_depth:
            logger.info(f"[CRAWL] Skipping {task.current_url}: depth {task.current_depth} > max {task.max_depth}")
            outcome.skipped = True
            return outcome

        logger.info(f"[CRAWL] {task.current_url} (depth={task.current_depth}/{task.max_depth}, limit={task.limit})")
        page = self.browser.render(task.current_url)

        children = select_child_links(
            page.links, task.original_url, task.limit,
            base=page.final_url, ignore_patterns=task.ignore_pattern,
        )
        for link in children:
            self.task_queue.send(task.child(link).to_message())
        outcome.children = children
        logger.info(f"[CRAWL] {task.current_url}: enqueued {len(children)} child task(s)")

        key = cache_key(SCRAPE, task.current_url)
        markdown = self._cache_get(key)
        if markdown is not None:
            outcome.cache_hit = True
            logger.info(f"[CACHE] Hit for {key}")
        else:
            markdown = self.extractor.extract(page.html, detailed=task.detailed, url=task.current_url)
            self._cache_put(key, markdown, self.scrape_ttl)

        self.callback_queue.send(CallbackTask(callback=task.callback, url=task.current_url).to_message())
        return outcome

    # -------------------------------
    # SYNCHRONOUS ENDPOINTS
    # -------------------------------
    def scrape(self, url, detailed=False, cache_enabled=True) -> str:
        key = cache_key(SCRAPE, url)
        if cache_enabled:
            cached = self._cache_get(key)
            if cached is not None:
                logger.info(f"[CACHE] Hit for {key}")
                return cached

        page = self.browser.render(url)
        markdown = self.extractor.extract(page.html, detailed=detailed, url=url)
        self._cache_put(key, markdown, self.scrape_ttl)
        return markdown

    def screenshot(self, url, cache_enabled=True) -> bytes:
        key = cache_key(SCREENSHOT, url)
        if cache_enabled:
            cached = self._cache_get(key)
            if cached is not None:
                logger.info(f"[CACHE] Hit for {key}")
                return bytes(cached)

        image = self.browser.screenshot(url)
        self._cache_put(key, image, self.screenshot_ttl)
        return image
