"""
Entry point for markcrawl.

  python main.py serve [--host H] [--port P]     HTTP surface (scrape, screenshot, crawl dispatcher)
  python main.py crawl-worker                     consume the crawler queue
  python main.py callback-worker                  consume the callback queue
  python main.py enqueue URL CALLBACK [--depth N] [--limit N] [--detailed] [--ignore-pattern REGEX ...]
"""

import argparse
import signal
import sys
import threading

from markcrawl.core import (
    CACHE_DB_PATH,
    QUEUE_DB_PATH,
    CRAWLER_QUEUE,
    CALLBACK_QUEUE,
    DEFAULT_CRAWL_LIMIT,
    logger,
)
from markcrawl.app import create_app
from markcrawl.callbacks import CallbackDeliveryWorker
from markcrawl.consumer import QueueConsumer
from markcrawl.engine import CrawlActor
from markcrawl.extractor import MarkdownExtractor
from markcrawl.js_engine import BrowserManager
from markcrawl.models import CrawlTask
from markcrawl.schemas import CrawlRequest
from markcrawl.storage.cache import SQLiteCache
from markcrawl.storage.queue import SQLiteQueue


def build_actor(cache, crawler_queue, callback_queue):
    return CrawlActor(
        browser=BrowserManager(),
        extractor=MarkdownExtractor(),
        cache=cache,
        task_queue=crawler_queue,
        callback_queue=callback_queue,
    )


def _stop_on_signal(stop_event):
    def handler(signum, frame):
        logger.info(f"Received signal {signum}, stopping.")
        stop_event.set()
    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def serve(args, cache, crawler_queue, callback_queue):
    actor = build_actor(cache, crawler_queue, callback_queue)
    app = create_app(actor, crawler_queue)
    try:
        app.run(host=args.host, port=args.port, threaded=True)
    finally:
        actor.browser.shutdown()


def crawl_worker(args, cache, crawler_queue, callback_queue):
    actor = build_actor(cache, crawler_queue, callback_queue)
    consumer = QueueConsumer(actor=actor)
    stop_event = threading.Event()
    _stop_on_signal(stop_event)
    try:
        consumer.run(crawler_queue, stop_event=stop_event)
    finally:
        actor.browser.shutdown()
    logger.info(f"Crawl worker finished: {consumer.stats}")


def callback_worker(args, cache, crawler_queue, callback_queue):
    consumer = QueueConsumer(delivery_worker=CallbackDeliveryWorker(cache))
    stop_event = threading.Event()
    _stop_on_signal(stop_event)
    consumer.run(callback_queue, stop_event=stop_event)
    logger.info(f"Callback worker finished: {consumer.stats}")


def enqueue(args, cache, crawler_queue, callback_queue):
    body = CrawlRequest(url=args.url, callback=args.callback, depth=args.depth,
                        limit=args.limit, detailed=args.detailed, ignore_pattern=args.ignore_pattern)
    seed = CrawlTask(
        current_url=body.url,
        original_url=body.url,
        current_depth=0,
        max_depth=body.depth,
        limit=body.limit,
        callback=body.callback,
        detailed=body.detailed,
        ignore_pattern=tuple(body.ignore_pattern),
    )
    crawler_queue.send(seed.to_message())
    logger.info(f"Enqueued seed {args.url} (depth={args.depth}, limit={args.limit})")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Scoped headless-browser crawler")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8787)
    p_serve.set_defaults(func=serve)

    sub.add_parser("crawl-worker", help="Consume crawl tasks").set_defaults(func=crawl_worker)
    sub.add_parser("callback-worker", help="Deliver callbacks").set_defaults(func=callback_worker)

    p_enqueue = sub.add_parser("enqueue", help="Seed a crawl without going through HTTP")
    p_enqueue.add_argument("url")
    p_enqueue.add_argument("callback")
    p_enqueue.add_argument("--depth", type=int, default=1)
    p_enqueue.add_argument("--limit", type=int, default=DEFAULT_CRAWL_LIMIT)
    p_enqueue.add_argument("--detailed", action="store_true")
    p_enqueue.add_argument("--ignore-pattern", action="append", default=[], metavar="REGEX")
    p_enqueue.set_defaults(func=enqueue)

    args = parser.parse_args(argv)

    cache = SQLiteCache(CACHE_DB_PATH)
    crawler_queue = SQLiteQueue(QUEUE_DB_PATH, CRAWLER_QUEUE)
    callback_queue = SQLiteQueue(QUEUE_DB_PATH, CALLBACK_QUEUE)
    try:
        args.func(args, cache, crawler_queue, callback_queue)
    finally:
        crawler_queue.close()
        callback_queue.close()
        cache.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
