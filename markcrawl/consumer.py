"""
FILE DESCRIPTION: Queue consumer routing leased batches to the crawl actor or the
callback delivery worker.
KEY FUNCTIONS/CLASSES: QueueConsumer

Messages in a batch are handled one after the other and acknowledged individually
once their task completes. Task-fatal errors nack the message so the queue redelivers
it; undecodable bodies and exhausted callback deliveries are acknowledged and dropped.
"""

import threading

from markcrawl.core import CRAWLER_QUEUE, CALLBACK_QUEUE, QUEUE_BATCH_SIZE, QUEUE_POLL_INTERVAL, setup_logger
from markcrawl.errors import DeliveryFailed, UnknownQueueSource
from markcrawl.models import CrawlTask, CallbackTask

logger = setup_logger("markcrawl.consumer")


class QueueConsumer:

    def __init__(self, actor=None, delivery_worker=None,
                 crawler_queue_name=CRAWLER_QUEUE, callback_queue_name=CALLBACK_QUEUE):
        self.actor = actor
        self.delivery_worker = delivery_worker
        self.crawler_queue_name = crawler_queue_name
        self.callback_queue_name = callback_queue_name
        self.stats = {"acked": 0, "nacked": 0, "dropped": 0}

    def _route(self, queue_name):
        """Returns (decoder, handler) for a logical queue name."""
        if queue_name == self.crawler_queue_name and self.actor is not None:
            return CrawlTask.from_message, self.actor.process
        if queue_name == self.callback_queue_name and self.delivery_worker is not None:
            return CallbackTask.from_message, self.delivery_worker.deliver
        raise UnknownQueueSource(f"Unknown queue: {queue_name}")

    def handle_batch(self, queue_name, messages):
        decode, handler = self._route(queue_name)

        for message in messages:
            try:
                task = decode(message.body)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"[QUEUE] {queue_name}: dropping malformed message {message.id}: {e!r}")
                message.ack()
                self.stats["dropped"] += 1
                continue

            try:
                handler(task)
            except DeliveryFailed as e:
                logger.error(f"[CALLBACK] Dropping message {message.id}: {e}")
                message.ack()
                self.stats["dropped"] += 1
                continue
            except Exception as e:
                logger.error(f"[QUEUE] {queue_name}: message {message.id} failed on attempt {message.attempts}: {e}")
                message.nack()
                self.stats["nacked"] += 1
                continue

            message.ack()
            self.stats["acked"] += 1

    def poll_once(self, queue, max_messages=QUEUE_BATCH_SIZE):
        messages = queue.receive(max_messages)
        if messages:
            self.handle_batch(queue.name, messages)
        return len(messages)

    def run(self, queue, stop_event=None, poll_interval=QUEUE_POLL_INTERVAL, max_messages=QUEUE_BATCH_SIZE):
        """
        Poll `queue` until stop_event is set. Sleeps poll_interval between
        empty polls.
        """
        stop_event = stop_event or threading.Event()
        self._route(queue.name)
        logger.info(f"[QUEUE] Consuming {queue.name}")
        while not stop_event.is_set():
            if not self.poll_once(queue, max_messages):
                stop_event.wait(poll_interval)
        logger.info(f"[QUEUE] Stopped consuming {queue.name}")
