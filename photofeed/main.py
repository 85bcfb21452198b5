import atexit
import logging
import os
import threading
import uuid
import weakref
from concurrent.futures import TimeoutError as FutureTimeoutError

from flask import Flask, g, jsonify, request

from .coordinator import DEFAULT_DEBOUNCE_S, MAX_PAGE_LIMIT, PhotoFeedCoordinator
from .fetcher import DEFAULT_API_URL, HttpPageFetcher
from .logging_config import configure_logging
from .metrics import MetricsRecorder, metrics_response
from .models import CoordinatorState, QueryMode, SortOption

LOGGER = logging.getLogger(__name__)

TRUE_VALUES = {"1", "true", "yes", "on"}

# Coordinators built by create_app, closed once at interpreter exit.
_LIVE_COORDINATORS: "weakref.WeakKeyDictionary[PhotoFeedCoordinator, object]" = weakref.WeakKeyDictionary()


@atexit.register
def _close_live_coordinators() -> None:
    for coordinator, fetcher in list(_LIVE_COORDINATORS.items()):
        coordinator.close()
        if isinstance(fetcher, HttpPageFetcher):
            fetcher.close()


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in TRUE_VALUES


def _parse_positive_int(value: str | None, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value or str(default))
    except ValueError:
        return default
    return max(minimum, min(maximum, parsed))


def _request_value(name: str) -> str:
    return (request.form.get(name) or request.args.get(name) or "").strip()


def _resolve_sort() -> SortOption | None:
    sort = _request_value("sort")
    sort_by = _request_value("sort_by")
    sort_order = _request_value("sort_order")
    try:
        if sort:
            return SortOption(sort)
        if sort_by and sort_order:
            return SortOption.from_parts(sort_by, sort_order)
    except ValueError:
        return None
    return None


def create_app(config: dict | None = None) -> Flask:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"), os.environ.get("LOG_FORMAT", "json"))

    app = Flask(__name__)
    app.config.update(
        PHOTOS_API_URL=os.environ.get("PHOTOS_API_URL", DEFAULT_API_URL),
        PAGE_LIMIT=_parse_positive_int(os.environ.get("PAGE_LIMIT"), MAX_PAGE_LIMIT, 1, MAX_PAGE_LIMIT),
        SEARCH_DEBOUNCE_MS=int(os.environ.get("SEARCH_DEBOUNCE_MS", int(DEFAULT_DEBOUNCE_S * 1000))),
        QUERY_MODE=os.environ.get("QUERY_MODE", QueryMode.CLIENT.value).strip().lower(),
        FETCH_TIMEOUT_S=float(os.environ.get("FETCH_TIMEOUT_S", 15)),
        REQUEST_WAIT_TIMEOUT_S=float(os.environ.get("REQUEST_WAIT_TIMEOUT_S", 30)),
        LOAD_ON_START=_env_flag("LOAD_ON_START", "1"),
        PAGE_FETCHER=None,
        EXECUTOR=None,
        TIMER_FACTORY=threading.Timer,
    )

    if config:
        app.config.update(config)

    fetcher = app.config["PAGE_FETCHER"] or HttpPageFetcher(
        base_url=app.config["PHOTOS_API_URL"],
        timeout_s=app.config["FETCH_TIMEOUT_S"],
    )

    metrics = MetricsRecorder()
    coordinator = PhotoFeedCoordinator(
        fetcher,
        mode=QueryMode(app.config["QUERY_MODE"]),
        page_limit=int(app.config["PAGE_LIMIT"]),
        debounce_s=max(0, int(app.config["SEARCH_DEBOUNCE_MS"])) / 1000.0,
        executor=app.config["EXECUTOR"],
        timer_factory=app.config["TIMER_FACTORY"],
        metrics=metrics,
    )

    app.extensions["coordinator"] = coordinator
    app.extensions["fetcher"] = fetcher
    app.extensions["metrics"] = metrics

    LOGGER.info(
        "startup",
        extra={
            "photos_api_url": app.config["PHOTOS_API_URL"],
            "query_mode": coordinator.mode.value,
            "page_limit": coordinator.page_limit,
            "search_debounce_ms": app.config["SEARCH_DEBOUNCE_MS"],
        },
    )

    if app.config.get("LOAD_ON_START", True):
        coordinator.load_first()

    _LIVE_COORDINATORS[coordinator] = fetcher

    @app.before_request
    def _before_request() -> None:
        g.request_started_at = metrics.http_before_request()
        g.request_id = str(uuid.uuid4())

    @app.after_request
    def _after_request(response):
        started = getattr(g, "request_started_at", None)
        if started is not None:
            metrics.http_after_request(started, response.status_code)
        response.headers["X-Request-ID"] = getattr(g, "request_id", "")
        LOGGER.info(
            "http_request",
            extra={
                "request_id": getattr(g, "request_id", ""),
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "remote_addr": request.remote_addr,
            },
        )
        return response

    def _state_payload(**extra):
        payload = {"ok": True, **extra}
        payload.update(coordinator.view_state().to_dict())
        return jsonify(payload)

    @app.route("/api/photos", methods=["GET"])
    def list_photos():
        return _state_payload()

    def _load_response(future):
        if _request_value("wait") in TRUE_VALUES:
            try:
                future.result(timeout=app.config["REQUEST_WAIT_TIMEOUT_S"])
            except FutureTimeoutError:
                return jsonify({"ok": False, "error": "timeout"}), 504
        return _state_payload(state="loaded" if future.done() else "loading")

    @app.route("/api/photos/refresh", methods=["POST"])
    def refresh_photos():
        return _load_response(coordinator.refresh())

    @app.route("/api/photos/next", methods=["POST"])
    def next_photos():
        future = coordinator.load_next()
        if future is None:
            return _state_payload(state="noop")
        return _load_response(future)

    @app.route("/api/photos/search", methods=["POST"])
    def search_photos():
        text = request.form.get("q")
        if text is None:
            text = request.args.get("q", "")
        coordinator.set_search_text(text)
        return _state_payload(state="debouncing")

    @app.route("/api/photos/sort", methods=["POST"])
    def sort_photos():
        option = _resolve_sort()
        if option is None:
            return jsonify({"ok": False, "error": "invalid_sort"}), 400
        coordinator.set_sort_option(option)
        return _state_payload()

    @app.route("/api/photos/<int:photo_id>", methods=["GET"])
    def photo_detail(photo_id: int):
        photo = coordinator.get_photo(photo_id)
        if photo is None:
            return jsonify({"ok": False, "error": "not_found"}), 404
        return jsonify({"ok": True, "photo": {**photo.to_dict(), "aspect_ratio": photo.aspect_ratio}})

    @app.route("/api/photos/<int:photo_id>/should-load-more", methods=["GET"])
    def should_load_more(photo_id: int):
        return jsonify({"ok": True, "load_more": coordinator.should_load_more(photo_id)})

    @app.route("/api/sort-options", methods=["GET"])
    def sort_options():
        return jsonify(
            {
                "ok": True,
                "options": [{"id": option.value, "label": option.label} for option in SortOption],
                "default": SortOption.ID_DESC.value,
            }
        )

    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        return metrics_response()

    @app.route("/readyz", methods=["GET"])
    def readyz():
        view = coordinator.view_state()
        checks: dict[str, object] = {
            "phase": view.phase.value,
            "cached_photos": view.cached_count,
            "query_mode": coordinator.mode.value,
        }
        failed_without_data = view.cached_count == 0 and view.error_message is not None and not view.is_empty_result
        if failed_without_data:
            checks["fetch_error"] = view.error_message

        ok = view.phase != CoordinatorState.IDLE and not failed_without_data
        status = 200 if ok else 503
        return jsonify({"ok": ok, "checks": checks}), status

    @app.route("/healthz", methods=["GET"])
    def health():
        return "ok", 200

    return app


if __name__ == "__main__":
    print("[WARNING] Starting Flask Development Server. Do not use in production.")
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
