import time

from flask import Response, request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency seconds",
    ["method", "route"],
)

PHOTOFEED_FETCHES_TOTAL = Counter(
    "photofeed_fetches_total",
    "Page fetches by kind and outcome",
    ["kind", "outcome"],
)
PHOTOFEED_FETCH_DURATION_SECONDS = Histogram(
    "photofeed_fetch_duration_seconds",
    "Page fetch duration",
    ["kind"],
)
PHOTOFEED_STALE_RESULTS_DROPPED_TOTAL = Counter(
    "photofeed_stale_results_dropped_total",
    "Fetch results discarded because a newer load started",
    ["kind"],
)
PHOTOFEED_DEBOUNCE_SUPERSEDED_TOTAL = Counter(
    "photofeed_debounce_superseded_total",
    "Search debounce timers cancelled by newer input",
)
PHOTOFEED_CACHED_PHOTOS = Gauge(
    "photofeed_cached_photos",
    "Photos currently held in the page cache",
)


class MetricsRecorder:
    def http_before_request(self) -> float:
        return time.perf_counter()

    def http_after_request(self, started: float, response_status: int) -> None:
        elapsed = max(0.0, time.perf_counter() - started)
        route = request.url_rule.rule if request.url_rule else "unknown"
        method = request.method
        status = str(response_status)
        HTTP_REQUESTS_TOTAL.labels(method=method, route=route, status=status).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, route=route).observe(elapsed)

    def mark_fetch(self, kind: str, outcome: str) -> None:
        PHOTOFEED_FETCHES_TOTAL.labels(kind=kind, outcome=outcome).inc()

    def observe_fetch_duration(self, kind: str, seconds: float) -> None:
        PHOTOFEED_FETCH_DURATION_SECONDS.labels(kind=kind).observe(max(0.0, seconds))

    def mark_stale_dropped(self, kind: str) -> None:
        PHOTOFEED_STALE_RESULTS_DROPPED_TOTAL.labels(kind=kind).inc()

    def mark_debounce_superseded(self) -> None:
        PHOTOFEED_DEBOUNCE_SUPERSEDED_TOTAL.inc()

    def set_cached_photos(self, value: int) -> None:
        PHOTOFEED_CACHED_PHOTOS.set(max(0, value))


def metrics_response() -> Response:
    return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
