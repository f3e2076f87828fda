"""
Callback delivery: POSTs a crawled page's markdown to the caller's webhook.
"""

import time
import requests

from markcrawl.core import CALLBACK_MAX_RETRIES, CALLBACK_TIMEOUT, USER_AGENT, setup_logger
from markcrawl.errors import DeliveryFailed
from markcrawl.models import CallbackTask
from markcrawl.storage.cache import cache_key, SCRAPE

logger = setup_logger("markcrawl.callbacks")


class CallbackDeliveryWorker:
    """
    FLOW: Reads the artifact for task.url from the cache -> drops the task if it is
    gone -> POSTs {url, markdown} to task.callback, retrying transport errors and 5xx
    up to max_retries times -> raises DeliveryFailed once retries are exhausted.
    """

    def __init__(self, cache, session=None, max_retries=CALLBACK_MAX_RETRIES,
                 timeout=CALLBACK_TIMEOUT, sleep=time.sleep):
        self.cache = cache
        self.session = session if session is not None else requests.Session()
        self.max_retries = max_retries
        self.timeout = timeout
        self.sleep = sleep

    def deliver(self, task: CallbackTask) -> bool:
        """
        Returns True when delivered, False when the artifact was missing
        and the task was dropped.
        """
        markdown = self.cache.get(cache_key(SCRAPE, task.url))
        if markdown is None:
            logger.warning(f"[CALLBACK] No cached artifact for {task.url}; dropping callback to {task.callback}")
            return False

        payload = {"url": task.url, "markdown": markdown}
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            try:
                r = self.session.post(
                    task.callback,
                    json=payload,
                    timeout=self.timeout,
                    headers={"User-Agent": USER_AGENT},
                )
                if r.status_code >= 500:
                    raise requests.exceptions.HTTPError(f"HTTP {r.status_code}", response=r)
                if r.status_code >= 400:
                    # 4xx: not retried
                    raise DeliveryFailed(f"Callback {task.callback} rejected {task.url} with HTTP {r.status_code}")
                logger.info(f"[CALLBACK] Delivered {task.url} to {task.callback} (attempt {attempt})")
                return True
            except requests.exceptions.RequestException as e:
                last_error = e
                logger.warning(f"[CALLBACK] Attempt {attempt}/{self.max_retries} to {task.callback} failed: {e}")
                if attempt < self.max_retries:
                    self.sleep(attempt)

        raise DeliveryFailed(f"Callback {task.callback} for {task.url} failed after {self.max_retries} attempts: {last_error}")
