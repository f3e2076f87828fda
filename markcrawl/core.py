"""
FILE DESCRIPTION: Foundational module for global configuration and logging.
KEY FUNCTIONS/CLASSES: setup_logger, CompanyFormatter, configuration constants
"""

import logging
import sys
import os
from datetime import datetime
from pathlib import Path
from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

# Load .env at the repository root before reading any setting
load_dotenv(Path(__file__).resolve().parents[1] / '.env')

# Bearer token required by POST /crawl
CRAWL_TOKEN = os.getenv("CRAWL_TOKEN", "")

# canonical data directory for the SQLite queue and cache
DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).resolve().parents[1] / 'data'))
CACHE_DB_PATH = Path(os.getenv("CACHE_DB_PATH", DATA_DIR / 'cache.db'))
QUEUE_DB_PATH = Path(os.getenv("QUEUE_DB_PATH", DATA_DIR / 'queue.db'))

# Logical queue names
CRAWLER_QUEUE = os.getenv("CRAWLER_QUEUE", "markcrawl-crawler")
CALLBACK_QUEUE = os.getenv("CALLBACK_QUEUE", "markcrawl-callbacks")

# Crawl budget accepted by the dispatcher
MAX_CRAWL_DEPTH = int(os.getenv("MAX_CRAWL_DEPTH", 3))
MAX_CRAWL_LIMIT = int(os.getenv("MAX_CRAWL_LIMIT", 100))
DEFAULT_CRAWL_LIMIT = 20

# Cache TTLs (seconds)
SCRAPE_TTL = int(os.getenv("SCRAPE_TTL", 60 * 60))
SCREENSHOT_TTL = int(os.getenv("SCREENSHOT_TTL", 60 * 60 * 24))

# Playwright / browser lifecycle (seconds)
JS_GOTO_TIMEOUT = int(os.getenv("JS_GOTO_TIMEOUT", 25))
BROWSER_MAX_RETRIES = 3
KEEP_BROWSER_ALIVE_SECONDS = int(os.getenv("KEEP_BROWSER_ALIVE_SECONDS", 60))
ALARM_INTERVAL_SECONDS = 10
BROWSER_WS_ENDPOINT = os.getenv("BROWSER_WS_ENDPOINT") or None
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"

# Callback delivery
CALLBACK_MAX_RETRIES = 3
CALLBACK_TIMEOUT = int(os.getenv("CALLBACK_TIMEOUT", 30))

# Queue transport
QUEUE_MAX_RETRIES = int(os.getenv("QUEUE_MAX_RETRIES", 3))
QUEUE_VISIBILITY_TIMEOUT = int(os.getenv("QUEUE_VISIBILITY_TIMEOUT", 300))
QUEUE_BATCH_SIZE = int(os.getenv("QUEUE_BATCH_SIZE", 10))
QUEUE_POLL_INTERVAL = float(os.getenv("QUEUE_POLL_INTERVAL", 1.0))


# === LOGGING SECTION ===

class CompanyFormatter(logging.Formatter):
    """
    FLOW: Receives a log record -> Extracts timestamp -> Formats according to company standard
    (e.g., [ Tue Jan 06 05:32:41 AM UTC 2026 ]) -> Prepends level and context -> Returns final string.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        context = getattr(record, 'context', record.name)
        return f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"

def setup_logger(name="markcrawl", log_file=None, level=logging.INFO):
    """
    FLOW: Initializes/Retrieves logger -> Checks for existing handlers to prevent duplicates ->
    Sets propagation for child loggers -> Attaches Console and optional File handlers with CompanyFormatter.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    if name != "markcrawl":
        logger.propagate = True
        setup_logger("markcrawl", log_file=log_file, level=level)
        return logger

    formatter = CompanyFormatter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger

# Global logger instance
logger = setup_logger()
