"""
Crawl actor traversal: depth gate, scoped fan-out, cache-aside extraction and
failure propagation.
"""

import unittest
from unittest.mock import MagicMock

from markcrawl.engine import CrawlActor
from markcrawl.errors import BrowserUnavailable, ExtractionFailed
from markcrawl.extractor import MarkdownExtractor
from markcrawl.models import CrawlTask, RenderedPage
from markcrawl.storage.cache import MemoryCache
from markcrawl.storage.queue import MemoryQueue

ARTICLE = "<html><head><title>A</title></head><body><main><h1>Title</h1><p>Body text.</p></main></body></html>"


def make_task(url="https://a.test", depth=0, max_depth=1, limit=2, detailed=False, ignore_pattern=()):
    return CrawlTask(
        current_url=url,
        original_url="https://a.test",
        current_depth=depth,
        max_depth=max_depth,
        limit=limit,
        callback="https://hooks.test/done",
        detailed=detailed,
        ignore_pattern=ignore_pattern,
    )


class CrawlActorTestCase(unittest.TestCase):

    def setUp(self):
        self.browser = MagicMock()
        self.browser.render.side_effect = lambda url: RenderedPage(
            url=url, final_url=url, html=ARTICLE, links=self.links,
        )
        self.links = []
        self.extractor = MagicMock(wraps=MarkdownExtractor())
        self.cache = MemoryCache()
        self.task_queue = MemoryQueue("crawler")
        self.callback_queue = MemoryQueue("callbacks")
        self.actor = CrawlActor(
            browser=self.browser,
            extractor=self.extractor,
            cache=self.cache,
            task_queue=self.task_queue,
            callback_queue=self.callback_queue,
        )

    def drain(self, queue):
        bodies = [m.body for m in queue.receive(1000)]
        return bodies


class TestDepthGate(CrawlActorTestCase):

    def test_task_beyond_max_depth_is_a_no_op(self):
        self.links = ["https://a.test/one"]
        outcome = self.actor.process(make_task(depth=2, max_depth=1))

        self.assertTrue(outcome.skipped)
        self.browser.render.assert_not_called()
        self.extractor.extract.assert_not_called()
        self.assertEqual(len(self.task_queue), 0)
        self.assertEqual(len(self.callback_queue), 0)
        self.assertEqual(len(self.cache), 0)

    def test_task_at_max_depth_is_processed(self):
        self.links = ["https://a.test/one"]
        outcome = self.actor.process(make_task(url="https://a.test/x", depth=1, max_depth=1))

        self.assertFalse(outcome.skipped)
        self.browser.render.assert_called_once_with("https://a.test/x")
        self.assertEqual(len(self.callback_queue), 1)


class TestFanOut(CrawlActorTestCase):

    def test_end_to_end_seed_scenario(self):
        self.links = [
            "https://a.test/one",
            "https://a.test/two",
            "https://a.test/three",
            "https://elsewhere.test/page",
        ]
        self.actor.process(make_task(max_depth=1, limit=2))

        children = self.drain(self.task_queue)
        self.assertEqual(len(children), 2)
        self.assertTrue(all(c["currentDepth"] == 1 for c in children))
        self.assertTrue(all(c["originalUrl"] == "https://a.test" for c in children))
        self.assertTrue(all(c["maxDepth"] == 1 and c["limit"] == 2 for c in children))
        self.assertNotIn("https://elsewhere.test/page", [c["currentUrl"] for c in children])

        callbacks = self.drain(self.callback_queue)
        self.assertEqual(callbacks, [{"callback": "https://hooks.test/done", "url": "https://a.test"}])

    def test_duplicates_never_enqueued_twice(self):
        self.links = ["https://a.test/one"] * 5 + ["https://a.test/two", "https://a.test/one#frag"]
        outcome = self.actor.process(make_task(limit=10))

        urls = [c["currentUrl"] for c in self.drain(self.task_queue)]
        self.assertEqual(sorted(urls), ["https://a.test/one", "https://a.test/two"])
        self.assertEqual(sorted(outcome.children), sorted(urls))

    def test_fan_out_bounded_by_limit(self):
        self.links = [f"https://a.test/p{i}" for i in range(50)]
        self.actor.process(make_task(limit=7))
        self.assertEqual(len(self.drain(self.task_queue)), 7)

    def test_detailed_flag_carried_to_children_and_extractor(self):
        self.links = ["https://a.test/one"]
        self.actor.process(make_task(detailed=True))
        self.assertTrue(self.drain(self.task_queue)[0]["detailed"])
        self.assertTrue(self.extractor.extract.call_args.kwargs["detailed"])

    def test_malformed_anchor_does_not_fail_the_page(self):
        self.links = ["https://a.test/one", "http://[oops/", "https://a.test/two"]
        self.actor.process(make_task(limit=5))

        urls = [c["currentUrl"] for c in self.drain(self.task_queue)]
        self.assertEqual(urls, ["https://a.test/one", "https://a.test/two"])
        self.assertEqual(len(self.callback_queue), 1)

    def test_ignore_patterns_filter_and_carry_to_children(self):
        self.links = ["https://a.test/blog/post", "https://a.test/docs"]
        self.actor.process(make_task(limit=5, ignore_pattern=("/blog/",)))

        children = self.drain(self.task_queue)
        self.assertEqual([c["currentUrl"] for c in children], ["https://a.test/docs"])
        self.assertEqual(children[0]["ignorePattern"], ["/blog/"])

    def test_relative_links_resolve_against_final_url(self):
        self.browser.render.side_effect = lambda url: RenderedPage(
            url=url, final_url="https://a.test/docs/", html=ARTICLE, links=["intro", "../pricing"],
        )
        outcome = self.actor.process(make_task(limit=5))
        self.assertEqual(outcome.children, ["https://a.test/docs/intro", "https://a.test/pricing"])


class TestCacheAside(CrawlActorTestCase):

    def test_cached_artifact_skips_extraction(self):
        self.cache.put("scrape:https://a.test", "# cached", 60)
        outcome = self.actor.process(make_task())

        self.assertTrue(outcome.cache_hit)
        self.extractor.extract.assert_not_called()
        self.assertEqual(self.cache.get("scrape:https://a.test"), "# cached")
        self.assertEqual(len(self.callback_queue), 1)

    def test_miss_writes_artifact_before_callback(self):
        self.actor.process(make_task())
        markdown = self.cache.get("scrape:https://a.test")
        self.assertIn("Body text.", markdown)
        self.assertEqual(len(self.callback_queue), 1)

    def test_cache_write_failure_is_not_fatal(self):
        self.actor.cache = MagicMock()
        self.actor.cache.get.return_value = None
        self.actor.cache.put.side_effect = OSError("disk full")

        self.actor.process(make_task())
        self.assertEqual(len(self.callback_queue), 1)

    def test_repeat_scrape_served_from_cache(self):
        first = self.actor.scrape("https://a.test/article")
        second = self.actor.scrape("https://a.test/article")

        self.assertEqual(first, second)
        self.browser.render.assert_called_once_with("https://a.test/article")

    def test_scrape_with_cache_disabled_refetches(self):
        self.actor.scrape("https://a.test/article")
        self.actor.scrape("https://a.test/article", cache_enabled=False)
        self.assertEqual(self.browser.render.call_count, 2)

    def test_screenshot_cached_for_a_day(self):
        self.browser.screenshot.return_value = b"\x89PNG"
        self.actor.cache = MagicMock(wraps=MemoryCache())
        self.actor.screenshot("https://a.test")
        self.actor.screenshot("https://a.test")

        self.browser.screenshot.assert_called_once_with("https://a.test")
        self.actor.cache.put.assert_called_once_with("screenshot:https://a.test", b"\x89PNG", 60 * 60 * 24)


class TestFailures(CrawlActorTestCase):

    def test_browser_unavailable_propagates_without_side_effects(self):
        self.browser.render.side_effect = BrowserUnavailable()
        with self.assertRaises(BrowserUnavailable):
            self.actor.process(make_task())
        self.assertEqual(len(self.task_queue), 0)
        self.assertEqual(len(self.callback_queue), 0)

    def test_extraction_failure_keeps_enqueued_children(self):
        self.links = ["https://a.test/one"]
        self.actor.extractor = MagicMock()
        self.actor.extractor.extract.side_effect = ExtractionFailed()

        with self.assertRaises(ExtractionFailed):
            self.actor.process(make_task())

        self.assertEqual(len(self.task_queue), 1)
        self.assertEqual(len(self.callback_queue), 0)
        self.assertIsNone(self.cache.get("scrape:https://a.test"))


if __name__ == "__main__":
    unittest.main()
