from markcrawl.storage.cache import ContentCache, MemoryCache, SQLiteCache, cache_key, SCRAPE, SCREENSHOT
from markcrawl.storage.queue import MessageQueue, MemoryQueue, SQLiteQueue, Message, MessageState
