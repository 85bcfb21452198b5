from concurrent.futures import Future
from typing import NamedTuple

import pytest

from photofeed.coordinator import PhotoFeedCoordinator
from photofeed.main import create_app
from photofeed.models import Page, Photo, QueryMode


class FetchCall(NamedTuple):
    page: int
    limit: int
    search: str | None
    sort_by: str
    sort_order: str


def make_photo(photo_id: int, title: str, description: str | None = None) -> Photo:
    return Photo(
        id=photo_id,
        title=title,
        url=f"https://img.example/{photo_id}.jpg",
        description=description,
    )


def make_page(*photos: Photo, total_pages: int = 1) -> Page:
    return Page(photos=tuple(photos), total_pages=total_pages, count=len(photos))


class FakeFetcher:
    """Serves scripted pages; a value that is an exception gets raised."""

    def __init__(self, pages: dict | None = None, responder=None):
        self.pages = dict(pages or {})
        self.responder = responder
        self.calls: list[FetchCall] = []

    def fetch(self, page, limit, search, sort_by, sort_order):
        call = FetchCall(page, limit, search, sort_by, sort_order)
        self.calls.append(call)
        result = self.responder(call) if self.responder else self.pages[page]
        if isinstance(result, Exception):
            raise result
        return result


class ManualExecutor:
    """Holds submitted work until a test runs it, in any order."""

    def __init__(self, autorun: bool = False):
        self.autorun = autorun
        self.pending: list[tuple[Future, object, tuple, dict]] = []

    def submit(self, fn, *args, **kwargs) -> Future:
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        if self.autorun:
            self.run_all()
        return future

    def run_next(self, index: int = 0) -> Future:
        future, fn, args, kwargs = self.pending.pop(index)
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def run_all(self) -> None:
        while self.pending:
            self.run_next()

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        self.pending.clear()


class ManualTimer:
    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.fired = True
        self.function()


class ManualTimers:
    def __init__(self):
        self.created: list[ManualTimer] = []

    def __call__(self, interval, function) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.created.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.created if t.started and not t.cancelled and not t.fired]

    def fire_pending(self) -> None:
        for timer in self.live:
            timer.fire()


@pytest.fixture
def executor():
    return ManualExecutor()


@pytest.fixture
def timers():
    return ManualTimers()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def coordinator_factory(fetcher, executor, timers):
    created = []

    def _factory(mode: QueryMode = QueryMode.CLIENT, **kwargs):
        coordinator = PhotoFeedCoordinator(
            fetcher,
            mode=mode,
            executor=executor,
            timer_factory=timers,
            **kwargs,
        )
        created.append(coordinator)
        return coordinator

    yield _factory

    for coordinator in created:
        coordinator.close()


@pytest.fixture
def coordinator(coordinator_factory):
    return coordinator_factory()


@pytest.fixture
def app_factory(fetcher, timers):
    def _factory(overrides: dict | None = None):
        config = {
            "TESTING": True,
            "PAGE_FETCHER": fetcher,
            "EXECUTOR": ManualExecutor(autorun=True),
            "TIMER_FACTORY": timers,
            "LOAD_ON_START": False,
        }
        if overrides:
            config.update(overrides)

        return create_app(config)

    return _factory


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def client(app):
    return app.test_client()
