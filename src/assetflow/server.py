"""Local development server with a live-reload channel.

Static files are looked up through ordered base directories, after
route-prefix overrides. HTML responses get a small client that listens on
`/__livereload` (server-sent events) and refreshes the page when the
ReloadChannel is notified.
"""

from __future__ import annotations

import json
import mimetypes
import queue
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from flask import Flask, Response, abort, send_from_directory, stream_with_context
from werkzeug.security import safe_join
from werkzeug.serving import make_server

from .logging import get_logger


log = get_logger("assetflow.server")

RELOAD_PATH = "/__livereload"

_CLIENT_JS = """(function () {
  var source = new EventSource("%s");
  source.onmessage = function (event) {
    var data = JSON.parse(event.data);
    if (data.type === "reload") { window.location.reload(); }
  };
})();
""" % RELOAD_PATH

_SNIPPET = '<script src="%s.js"></script>' % RELOAD_PATH


class ReloadChannel:
    """Fan-out of reload notifications to connected browser sessions."""

    def __init__(self):
        self._subscribers: List[queue.Queue] = []
        self._lock = threading.Lock()
        self.notifications = 0

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            if q in self._subscribers:
                self._subscribers.remove(q)

    @property
    def active(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def notify(self, paths: Sequence[str] = ()) -> int:
        """Tell every connected client to refresh. Returns the client count."""
        message = {"type": "reload", "paths": [str(p) for p in paths]}
        with self._lock:
            subscribers = list(self._subscribers)
            self.notifications += 1
        for q in subscribers:
            q.put(message)
        log.info("Reload (%d client(s)): %s", len(subscribers), ", ".join(message["paths"]) or "*")
        return len(subscribers)


def _inject(html: str) -> str:
    idx = html.lower().rfind("</body>")
    if idx == -1:
        return html + _SNIPPET
    return html[:idx] + _SNIPPET + html[idx:]


def create_app(
    base_dirs: Sequence[str | Path],
    routes: Optional[Dict[str, str | Path]] = None,
    channel: Optional[ReloadChannel] = None,
    keepalive: float = 15.0,
) -> Flask:
    app = Flask(__name__, static_folder=None)
    bases = [Path(b).resolve() for b in base_dirs]
    # Longest prefix wins
    prefixes = sorted(
        ((p.strip("/"), Path(d).resolve()) for p, d in (routes or {}).items()),
        key=lambda item: len(item[0]),
        reverse=True,
    )
    app.config["RELOAD_CHANNEL"] = channel

    def candidates(path: str):
        for prefix, directory in prefixes:
            if path == prefix or path.startswith(prefix + "/"):
                yield directory, path[len(prefix) :].lstrip("/")
        for base in bases:
            yield base, path

    def serve(path: str) -> Response:
        for directory, rel in candidates(path.strip("/")):
            full = safe_join(str(directory), rel) if rel else str(directory)
            if full is None:
                continue
            target = Path(full)
            if target.is_dir():
                target = target / "index.html"
                rel = f"{rel}/index.html" if rel else "index.html"
            if not target.is_file():
                continue
            if channel is not None and target.suffix in (".html", ".htm"):
                body = _inject(target.read_text(encoding="utf-8"))
                return Response(body, mimetype="text/html")
            resp = send_from_directory(directory, rel)
            resp.headers["Cache-Control"] = "no-cache"
            return resp
        abort(404)

    @app.route(RELOAD_PATH + ".js")
    def reload_client():
        return Response(_CLIENT_JS, mimetype="application/javascript")

    @app.route(RELOAD_PATH)
    def reload_stream():
        if channel is None:
            abort(404)
        q = channel.subscribe()

        def events():
            try:
                yield ": connected\n\n"
                while True:
                    try:
                        message = q.get(timeout=keepalive)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    yield f"data: {json.dumps(message)}\n\n"
            finally:
                channel.unsubscribe(q)

        return Response(stream_with_context(events()), mimetype="text/event-stream")

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def static_files(path: str):
        return serve(path)

    return app


class DevServer:
    """Runs the Flask app on a background thread until stopped."""

    def __init__(
        self,
        app: Flask,
        host: str = "127.0.0.1",
        port: int = 9000,
    ):
        self.app = app
        self.host = host
        self.port = port
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        mimetypes.add_type("application/javascript", ".js")
        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="assetflow-server", daemon=True
        )
        self._thread.start()
        log.info("Serving on http://%s:%d", self.host, self.port)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._server = None
        self._thread = None
        log.info("Server stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
