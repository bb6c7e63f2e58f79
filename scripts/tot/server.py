#!/usr/bin/env python3
"""
tot: ticket vending server
Hands out increasing numbers per key (build numbers, usually) over HTTP.

    GET  /vend/<key>            increment and return the new value
    HEAD /vend/<key>            return the current value
    POST /vend/<key>  "<N>"     overwrite the value
"""

import os
import sys
import argparse
import logging
from typing import Optional, Tuple

from flask import Flask, Response, request

# Make scripts.tot importable when run as a file
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from scripts.tot.fallback import DEFAULT_URI, FallbackHandler
from scripts.tot.persistence import CorruptStorageError, PersistenceError
from scripts.tot.store import Store

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

PREFIX = "/vend/"
METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
VALUE_HEADER = "X-Tot-Value"


def _parse_number(body: bytes) -> Optional[int]:
    try:
        text = body.decode("ascii").strip()
    except UnicodeDecodeError:
        return None
    if not text.isdigit():
        return None
    return int(text)


def handle(store: Store, method: str, path: str, body: bytes = b"",
           remote: Optional[str] = None) -> Tuple[int, str]:
    """Run one request against store. Returns (status, response body)."""
    if not path.startswith(PREFIX) or len(path) == len(PREFIX):
        return 404, "not found\n"
    key = path[len(PREFIX):]

    try:
        if method == "GET":
            n = store.vend(key)
            logger.info(f"Vending {key} number {n} to {remote}")
            return 200, str(n)
        if method == "HEAD":
            n = store.peek(key)
            logger.info(f"Peeking {key} number {n} to {remote}")
            return 200, str(n)
        if method == "POST":
            n = _parse_number(body)
            if n is None:
                logger.error(f"Unable to parse number for {key} from {remote}: {body[:40]!r}")
                return 400, "body must be a non-negative integer\n"
            logger.info(f"Setting {key} to {n} from {remote}")
            store.set(key, n)
            return 200, ""
    except PersistenceError as e:
        logger.error(f"Persist error for {key}: {e}")
        return 500, "unable to persist\n"
    except ValueError as e:
        return 400, f"{e}\n"

    return 405, "method not allowed\n"


def create_app(store: Store) -> Flask:
    app = Flask(__name__)
    # a decimal number fits comfortably
    app.config["MAX_CONTENT_LENGTH"] = 1024

    @app.route('/', defaults={'path': ''}, methods=METHODS)
    @app.route('/<path:path>', methods=METHODS)
    def dispatch(path):
        body = request.get_data() if request.method == "POST" else b""
        status, text = handle(store, request.method, request.path, body, request.remote_addr)
        resp = Response(text, status=status, mimetype="text/plain")
        if status == 405:
            resp.headers["Allow"] = "GET, HEAD, POST"
        elif status == 200 and text:
            # HEAD bodies are dropped on the wire; the header survives
            resp.headers[VALUE_HEADER] = text
        return resp

    return app


def main():
    parser = argparse.ArgumentParser(description="tot ticket vending server")
    parser.add_argument('--port', type=int, default=int(os.environ.get("TOT_PORT", 8888)), help='Port to run on')
    parser.add_argument('--host', default='127.0.0.1', help='Host to bind to')
    parser.add_argument('--storage', default=os.environ.get("TOT_STORAGE", "tot.json"),
                        help='Where to store the counters (overrides TOT_STORAGE env var)')
    parser.add_argument('--fallback', action='store_true',
                        help='Seed unknown keys from the last published build number')
    parser.add_argument('--fallback-uri', default=DEFAULT_URI,
                        help='URI template with a {key} placeholder for --fallback')
    args = parser.parse_args()

    fallback = None
    if args.fallback:
        try:
            fallback = FallbackHandler(args.fallback_uri)
        except ValueError as e:
            parser.error(str(e))
    try:
        store = Store(args.storage, fallback=fallback)
    except CorruptStorageError as e:
        logger.error(f"Refusing to start: {e}")
        sys.exit(1)

    logger.info(f"Loaded {len(store.snapshot())} counters from {store.storage_path}")
    if fallback:
        logger.info(f"Fallback enabled: {args.fallback_uri}")
    logger.info(f"Starting tot on {args.host}:{args.port}")
    create_app(store).run(host=args.host, port=args.port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
