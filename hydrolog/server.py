#!/usr/bin/env python3
"""
server.py - Readings backend for local development
==================================================

Serves the readings API the dashboard and ApiStore talk to:

  GET    /api/<kind>-entries       -> {"entries": [...]}
  POST   /api/<kind>-entries       -> store one entry, {"success": true, "entry": {...}}
  DELETE /api/<kind>-entries       -> 405, entries are protected
  GET    /api/sensor-data          -> latest sensor feed values + timestamp
  GET    /api/export-data?kind=environmental&format=csv|json&days=7

<kind> is environmental, hydroponic or plant-growth. Entries are kept in
<data dir>/<kind>-entries.json, sorted by timestamp and capped.

Usage:
  hydrolog-server [--port PORT] [--host HOST] [--data-dir DIR]
"""

import argparse
import json
import logging
import threading
from datetime import timedelta
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from jsonschema.exceptions import best_match

from .config import Settings, load_settings
from .export import export_csv, export_json
from .feed import FeedError, SensorFeed, create_feed
from .fields import DOMAINS, Domain
from .ledger import Clock, Reading, format_timestamp, to_aware, utc_now
from .store import JsonFileStore, ledger_validator

logger = logging.getLogger(__name__)

SERVER_CAPACITY = 1000


class EntryBook:
    """Server-side entry list for one domain.

    Unlike the client ledger, the server accepts entries in any order and
    keeps them sorted by timestamp.
    """

    def __init__(self, store: JsonFileStore, capacity: int = SERVER_CAPACITY):
        self.store = store
        self.capacity = capacity
        self._lock = threading.Lock()

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self.store.load()

    def add(self, entry: Dict[str, Any]) -> bool:
        with self._lock:
            entries = self.store.load()
            entries.append(entry)
            entries.sort(key=lambda e: to_aware(e["timestamp"]))
            return self.store.save(entries[-self.capacity:])


class ReadingsAPI:
    """Request-independent state shared by all handler threads."""

    def __init__(self, settings: Settings, feed: Optional[SensorFeed] = None,
                 clock: Clock = utc_now):
        self.settings = settings
        self.feed = feed or create_feed(settings.feed_url, settings.mock_feed)
        self.clock = clock
        self.books: Dict[str, EntryBook] = {
            d.kind: EntryBook(JsonFileStore(settings.ledger_file(d.name)), settings.capacity)
            for d in DOMAINS.values()
        }
        self.domains: Dict[str, Domain] = {d.kind: d for d in DOMAINS.values()}

    def route_kind(self, path: str) -> Optional[str]:
        prefix, suffix = "/api/", "-entries"
        if path.startswith(prefix) and path.endswith(suffix):
            kind = path[len(prefix):-len(suffix)]
            if kind in self.books:
                return kind
        return None

    def post_entry(self, kind: str, entry: Any) -> Tuple[int, Dict[str, Any]]:
        if not isinstance(entry, dict) or not entry.get("timestamp"):
            return 400, {"error": "Timestamp is required"}
        if to_aware(entry["timestamp"]) is None:
            return 400, {"error": "Invalid timestamp"}
        error = best_match(ledger_validator().iter_errors([entry]))
        if error is not None:
            return 400, {"error": error.message}

        if not self.books[kind].add(entry):
            return 500, {"error": "Failed to save entry"}
        return 200, {"success": True, "entry": entry}

    def sensor_data(self) -> Tuple[int, Dict[str, Any]]:
        try:
            payload = self.feed.fetch()
        except FeedError as e:
            logger.error("Sensor feed unavailable: %s", e)
            return 502, {"error": "Sensor feed unavailable"}
        return 200, dict(payload, timestamp=format_timestamp(self.clock()))

    def export(self, query: Dict[str, List[str]]) -> Tuple[int, Dict[str, str], str]:
        """Render an export; returns (status, extra headers, body)."""
        fmt = query.get("format", ["csv"])[0]
        kind = query.get("kind", ["environmental"])[0]
        try:
            days = int(query.get("days", ["7"])[0])
        except ValueError:
            days = 7

        if kind not in self.books:
            return 400, {"Content-Type": "application/json"}, json.dumps({"error": "Invalid kind"})
        if fmt not in ("csv", "json"):
            return 400, {"Content-Type": "application/json"}, json.dumps({"error": "Invalid format"})

        cutoff = self.clock() - timedelta(days=days)
        readings = []
        for raw in self.books[kind].entries():
            try:
                reading = Reading.from_dict(raw)
            except ValueError:
                continue
            if reading.timestamp >= cutoff:
                readings.append(reading)

        domain = self.domains[kind]
        if fmt == "csv":
            body = export_csv(readings, domain)
            content_type = "text/csv; charset=utf-8"
        else:
            body = export_json(readings, domain, now=self.clock())
            content_type = "application/json; charset=utf-8"
        headers = {
            "Content-Type": content_type,
            "Content-Disposition": f'attachment; filename="{kind}-data-{days}days.{fmt}"',
        }
        return 200, headers, body


class ReadingsRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler with CORS headers for the readings API."""

    api: ReadingsAPI

    def end_headers(self):
        self.send_header('Access-Control-Allow-Origin', '*')
        self.send_header('Access-Control-Allow-Methods', 'GET, POST, OPTIONS')
        self.send_header('Access-Control-Allow-Headers', '*')
        self.send_header('Cache-Control', 'no-cache, no-store, must-revalidate')
        self.send_header('Pragma', 'no-cache')
        self.send_header('Expires', '0')
        super().end_headers()

    def _send(self, status: int, body: str, headers: Optional[Dict[str, str]] = None):
        data = body.encode("utf-8")
        self.send_response(status)
        for key, value in (headers or {"Content-Type": "application/json"}).items():
            self.send_header(key, value)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _send_json(self, status: int, payload: Any):
        self._send(status, json.dumps(payload))

    def do_OPTIONS(self):
        self.send_response(200)
        self.end_headers()

    def do_GET(self):
        url = urlparse(self.path)
        kind = self.api.route_kind(url.path)
        if kind is not None:
            self._send_json(200, {"entries": self.api.books[kind].entries()})
        elif url.path == "/api/sensor-data":
            self._send_json(*self.api.sensor_data())
        elif url.path == "/api/export-data":
            status, headers, body = self.api.export(parse_qs(url.query))
            self._send(status, body, headers)
        else:
            self._send_json(404, {"error": "Not found"})

    def do_POST(self):
        kind = self.api.route_kind(urlparse(self.path).path)
        if kind is None:
            self._send_json(404, {"error": "Not found"})
            return

        length = int(self.headers.get("Content-Length") or 0)
        try:
            entry = json.loads(self.rfile.read(length) or b"null")
        except ValueError:
            self._send_json(400, {"error": "Invalid JSON"})
            return
        self._send_json(*self.api.post_entry(kind, entry))

    def do_DELETE(self):
        if self.api.route_kind(urlparse(self.path).path) is None:
            self._send_json(404, {"error": "Not found"})
            return
        self._send_json(405, {"error": "Entries are protected and cannot be deleted"})

    def log_message(self, format, *args):
        logger.info("%s - %s", self.address_string(), format % args)


def make_server(api: ReadingsAPI, host: str = "localhost", port: int = 8000) -> ThreadingHTTPServer:
    """Bind a server for the given API state (port 0 picks a free port)."""
    handler = type("BoundReadingsRequestHandler", (ReadingsRequestHandler,), {"api": api})
    return ThreadingHTTPServer((host, port), handler)


def serve(host: str = "localhost", port: int = 8000, settings: Optional[Settings] = None):
    settings = settings or load_settings()
    httpd = make_server(ReadingsAPI(settings), host, port)

    print("Garden Readings API - Development Server")
    print("========================================")
    print(f"Data directory: {settings.data_dir.absolute()}")
    print(f"Server address: http://{host}:{httpd.server_address[1]}")
    print("Press Ctrl+C to stop the server")
    print()

    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down server...")
    finally:
        httpd.server_close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Development server for the garden readings API")
    parser.add_argument('--port', '-p', type=int, default=8000,
                        help='Port to serve on (default: 8000)')
    parser.add_argument('--host', '-H', default='localhost',
                        help='Host to serve on (default: localhost)')
    parser.add_argument('--data-dir', '-d', default=None,
                        help='Data directory (default: $HYDROLOG_DATA_DIR or ./data)')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    serve(args.host, args.port, load_settings(args.data_dir))


if __name__ == "__main__":
    main()
