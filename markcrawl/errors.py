class CrawlerError(Exception):
    """Base class for every failure raised by the crawl core."""
    message = "Crawler error"

    def __init__(self, message=None):
        super().__init__(message or self.message)


class BrowserUnavailable(CrawlerError):
    message = "Unable to start browser instance"


class ExtractionFailed(CrawlerError):
    message = "Unable to parse article content"


class DeliveryFailed(CrawlerError):
    message = "Unable to deliver callback"


class UnknownQueueSource(CrawlerError):
    message = "Unknown queue"
