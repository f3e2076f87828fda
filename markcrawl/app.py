"""
HTTP surface: synchronous scrape/screenshot endpoints and the crawl dispatcher.
The dispatcher only validates and enqueues the seed task; crawling happens in
the queue workers.
"""

import hmac

from flask import Flask, request, jsonify, current_app, Response
from pydantic import ValidationError

from markcrawl.core import CRAWL_TOKEN, setup_logger
from markcrawl.errors import CrawlerError
from markcrawl.models import CrawlTask
from markcrawl.schemas import ScrapeRequest, ScreenshotRequest, CrawlRequest

logger = setup_logger("markcrawl.app")


def _is_authorized(token):
    header = request.headers.get("Authorization", "")
    scheme, _, supplied = header.partition(" ")
    if scheme.lower() != "bearer" or not supplied or not token:
        return False
    return hmac.compare_digest(supplied.strip(), token)


def create_app(actor, crawler_queue, crawl_token=CRAWL_TOKEN):
    app = Flask(__name__)
    app.config["CRAWL_TOKEN"] = crawl_token
    app.extensions["markcrawl"] = {"actor": actor, "crawler_queue": crawler_queue}

    def deps():
        return current_app.extensions["markcrawl"]

    # ============================================================
    # ERRORS
    # ============================================================

    @app.errorhandler(ValidationError)
    def invalid_request(e):
        return jsonify({"error": "Invalid request", "details": e.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(CrawlerError)
    def crawler_error(e):
        logger.error(f"[HTTP] {request.method} {request.path} failed: {e}")
        return Response(f"Error: {e}", status=500, mimetype="text/plain")

    # ============================================================
    # ROUTES
    # ============================================================

    @app.route("/")
    def index():
        return Response("Hello markcrawl!", mimetype="text/plain")

    @app.route("/scrape", methods=["POST"])
    def scrape():
        body = ScrapeRequest.model_validate(request.get_json(silent=True) or {})
        logger.info(f"[HTTP] Scraping {body.url} (cache_enabled={body.cache_enabled}, detailed={body.detailed})")

        markdown = deps()["actor"].scrape(body.url, detailed=body.detailed, cache_enabled=body.cache_enabled)
        if not markdown:
            return Response("Error: No response from scrape", status=500, mimetype="text/plain")
        return Response(markdown, status=200, mimetype="text/markdown")

    @app.route("/screenshot", methods=["GET"])
    def screenshot():
        body = ScreenshotRequest.model_validate(request.args.to_dict())
        logger.info(f"[HTTP] Screenshot {body.url} (cache_enabled={body.cache_enabled})")

        image = deps()["actor"].screenshot(body.url, cache_enabled=body.cache_enabled)
        return Response(image, status=200, mimetype="image/png")

    @app.route("/crawl", methods=["POST"])
    def crawl():
        if not _is_authorized(current_app.config["CRAWL_TOKEN"]):
            return Response("Unauthorized", status=401, mimetype="text/plain",
                            headers={"WWW-Authenticate": "Bearer"})

        body = CrawlRequest.model_validate(request.get_json(silent=True) or {})
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
        deps()["crawler_queue"].send(seed.to_message())
        logger.info(f"[HTTP] Accepted crawl of {body.url} (depth={body.depth}, limit={body.limit})")
        return Response("Received", status=202, mimetype="text/plain")

    return app
