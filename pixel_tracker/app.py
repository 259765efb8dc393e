import logging
import sqlite3
import sys
from datetime import datetime, timezone

from flask import Flask, Response, abort, current_app, jsonify, redirect, render_template, request, url_for

from .aggregate import opened_pixels
from .config import ConfigError, Settings
from .dedup import DedupCache
from .storage import EventLog, PixelRegistry, ensure_schema, now_ms
from .tracking import NO_STORE_HEADERS, PIXEL_PNG, TrackingHandler, client_origin

EXTENSION = "pixel_tracker"
TRACKER_SUFFIX = ".png"

# range of an sqlite INTEGER
MIN_SINCE = -(2 ** 63)
MAX_SINCE = 2 ** 63 - 1


def create_app(settings=None, clock=None):
    """Build the app with its registry, event log and dedup cache.

    `clock` returns epoch milliseconds and drives event timestamps and the
    dedup window, so tests can move time by hand.
    """
    settings = settings or Settings.from_env()
    clock = clock or now_ms

    ensure_schema(settings.db_path)
    registry = PixelRegistry(settings.db_path, clock=clock)
    event_log = EventLog(settings.db_path)
    dedup = DedupCache(settings.dedup_window_seconds, clock=lambda: clock() / 1000.0)

    app = Flask(__name__)
    app.extensions[EXTENSION] = {
        "settings": settings,
        "clock": clock,
        "registry": registry,
        "event_log": event_log,
        "dedup": dedup,
        "handler": TrackingHandler(registry, event_log, dedup, clock=clock),
    }
    app.jinja_env.filters["iso"] = _iso
    _register_routes(app)
    return app


def _ctx(name):
    return current_app.extensions[EXTENSION][name]


def _iso(ms):
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat(timespec="seconds")


def _base_url():
    return request.host_url.rstrip("/")


def _register_routes(app):

    @app.route("/")
    def index():
        return render_template("index.html", pixels=_ctx("registry").list_all(), base_url=_base_url())

    @app.route("/create", methods=["POST"])
    def create():
        _ctx("registry").create(request.form.get("name"))
        return redirect(url_for("index"))

    @app.route("/tracker/<path:filename>")
    def tracker(filename):
        pixel_id = ""
        if filename.lower().endswith(TRACKER_SUFFIX):
            pixel_id = filename[:-len(TRACKER_SUFFIX)]
        settings = _ctx("settings")
        origin = client_origin(request, settings.trust_forwarded_for)
        _ctx("handler").handle(pixel_id, origin, request.headers.get("User-Agent"))
        # same bytes and headers whatever happened above
        return Response(PIXEL_PNG, status=200, headers=NO_STORE_HEADERS)

    @app.route("/logs/<pixel_id>")
    def logs(pixel_id):
        pixel = _ctx("registry").get(pixel_id)
        if pixel is None:
            abort(404)
        return render_template(
            "logs.html",
            pixel=pixel,
            logs=_ctx("event_log").list_by_pixel(pixel.id),
            base_url=_base_url(),
        )

    @app.route("/check")
    def check():
        raw = request.args.get("since")
        if raw is None or raw == "":
            since = _ctx("clock")() - _ctx("settings").check_default_lookback_ms
        else:
            try:
                since = int(raw)
            except ValueError:
                since = None
            if since is None or not MIN_SINCE <= since <= MAX_SINCE:
                return jsonify({"error": "since must be an integer epoch-millis value"}), 400
        try:
            opened = opened_pixels(_ctx("event_log"), since)
        except sqlite3.Error as e:
            current_app.logger.exception("open check since %s failed", since)
            return jsonify({"error": str(e)}), 500
        return jsonify({"openedPixels": opened})

    @app.route("/health")
    def health():
        return jsonify({"ok": True})


def main():
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        print("configuration error: %s" % e, file=sys.stderr)
        sys.exit(2)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
