import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import replace

from .cache import PhotoCache
from .debounce import Debouncer, TimerFactory
from .fetcher import FetchFailure, PageFetcher
from .metrics import MetricsRecorder
from .models import (
    CoordinatorState,
    Page,
    Photo,
    QueryMode,
    QueryState,
    SortField,
    SortOption,
    SortOrder,
    ViewState,
)
from .projection import project

LOGGER = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 100
DEFAULT_DEBOUNCE_S = 0.5

FIRST_PAGE_ERROR = "Failed to load photos. Check your internet connection and try again."
NO_PHOTOS_MESSAGE = "No photos available."
NO_MATCHES_MESSAGE = "No photos match your search"

KIND_FIRST = "first"
KIND_NEXT = "next"


class PhotoFeedCoordinator:
    """Owns the page cache and query for one photo feed session.

    Fetches run on ``executor``; their results are applied under a single
    lock and only if no newer first-page load has started since they were
    issued. Readers get immutable snapshots from ``view_state``.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        mode: QueryMode = QueryMode.CLIENT,
        page_limit: int = MAX_PAGE_LIMIT,
        debounce_s: float = DEFAULT_DEBOUNCE_S,
        executor: Executor | None = None,
        timer_factory: TimerFactory = threading.Timer,
        metrics: MetricsRecorder | None = None,
    ):
        self.fetcher = fetcher
        self.mode = QueryMode(mode)
        self.page_limit = max(1, min(MAX_PAGE_LIMIT, page_limit))
        self.metrics = metrics or MetricsRecorder()

        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="photofeed")
        self._debouncer = Debouncer(
            debounce_s,
            timer_factory=timer_factory,
            on_superseded=self.metrics.mark_debounce_superseded,
        )

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._cache = PhotoCache()
        self._query = QueryState()
        self._settled_search = ""
        # Query params of the load that filled the cache; next pages reuse them.
        self._cache_params = self._fetch_params()
        self._displayed: tuple[Photo, ...] = ()
        self._generation = 0
        self._in_flight = 0
        self._loading_first = False
        self._loading_next = False
        self._has_loaded = False
        self._started = False
        self._error: str | None = None

    # -- commands ----------------------------------------------------------

    def load_first(self) -> Future:
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._started = True
            self._loading_first = True
            # Any next-page fetch still out belongs to the old generation.
            self._loading_next = False
            self._error = None
            self._cache.current_page = 1
            params = self._fetch_params()
            self._in_flight += 1

        LOGGER.info(
            "load_first_started",
            extra={"generation": generation, "mode": self.mode.value, "search": params[0]},
        )
        return self._submit(KIND_FIRST, generation, 1, params)

    refresh = load_first

    def load_next(self) -> Future | None:
        with self._lock:
            if self._loading_first or self._loading_next or not self._cache.has_more:
                return None
            generation = self._generation
            page_number = self._cache.current_page + 1
            self._loading_next = True
            self._error = None
            params = self._cache_params
            self._in_flight += 1

        LOGGER.info("load_next_started", extra={"generation": generation, "page": page_number})
        return self._submit(KIND_NEXT, generation, page_number, params)

    def set_search_text(self, text: str) -> None:
        with self._lock:
            self._query = replace(self._query, search_text=text)
        self._debouncer.submit(self._settle_search)

    def set_sort_option(
        self,
        sort: SortOption | SortField | str,
        sort_order: SortOrder | str | None = None,
    ) -> Future | None:
        if isinstance(sort, SortOption):
            option = sort
        elif sort_order is None:
            option = SortOption(sort)
        else:
            option = SortOption.from_parts(sort, sort_order)

        with self._lock:
            unchanged = option == self._query.sort_option
            self._query = replace(self._query, sort_field=option.sort_field, sort_order=option.sort_order)
            if self.mode == QueryMode.CLIENT:
                self._refresh_display()
                return None
            if unchanged:
                return None

        LOGGER.info("sort_changed", extra={"sort": option.value, "mode": self.mode.value})
        return self.load_first()

    def close(self) -> None:
        self._debouncer.cancel()
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)

    # -- queries -----------------------------------------------------------

    def should_load_more(self, photo_id: int) -> bool:
        with self._lock:
            if not self._displayed or self._displayed[-1].id != photo_id:
                return False
            return self._cache.has_more and not self._loading_next

    def get_photo(self, photo_id: int) -> Photo | None:
        with self._lock:
            return self._cache.get(photo_id)

    @property
    def search_pending(self) -> bool:
        return self._debouncer.pending

    def view_state(self) -> ViewState:
        with self._lock:
            is_empty = (
                self._has_loaded
                and not self._loading_first
                and self._error is None
                and not self._displayed
            )
            error_message = self._error
            if is_empty:
                error_message = NO_MATCHES_MESSAGE if self._active_search() else NO_PHOTOS_MESSAGE

            return ViewState(
                is_loading_first_page=self._loading_first,
                is_loading_next_page=self._loading_next,
                error_message=error_message,
                displayed_items=self._displayed,
                phase=self._phase(),
                current_page=self._cache.current_page,
                total_pages=self._cache.total_pages,
                cached_count=len(self._cache),
                search_text=self._query.search_text,
                sort_option=self._query.sort_option,
                is_empty_result=is_empty,
            )

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    # -- internals ---------------------------------------------------------

    def _phase(self) -> CoordinatorState:
        if self._loading_first:
            return CoordinatorState.LOADING_FIRST_PAGE
        if self._loading_next:
            return CoordinatorState.LOADING_NEXT_PAGE
        if self._started:
            return CoordinatorState.READY
        return CoordinatorState.IDLE

    def _active_search(self) -> str:
        if self.mode == QueryMode.CLIENT:
            return self._settled_search
        return self._cache_params[0] or ""

    def _fetch_params(self) -> tuple[str | None, str, str]:
        if self.mode == QueryMode.CLIENT:
            return None, SortField.ID.value, SortOrder.ASC.value
        return (
            self._query.search_text or None,
            self._query.sort_field.value,
            self._query.sort_order.value,
        )

    def _refresh_display(self) -> None:
        if self.mode == QueryMode.SERVER:
            self._displayed = self._cache.items
        else:
            self._displayed = project(self._cache.items, replace(self._query, search_text=self._settled_search))

    def _settle_search(self) -> None:
        with self._lock:
            text = self._query.search_text
            if self.mode == QueryMode.CLIENT:
                self._settled_search = text
                self._refresh_display()
                LOGGER.info("search_settled", extra={"search": text, "matches": len(self._displayed)})
                return

        LOGGER.info("search_settled", extra={"search": text})
        self.load_first()

    def _submit(self, kind: str, generation: int, page_number: int, params: tuple[str | None, str, str]) -> Future:
        try:
            return self.executor.submit(self._run_fetch, kind, generation, page_number, params)
        except RuntimeError:
            # Executor already shut down.
            self._apply(kind, generation, page_number, None, params)
            raise

    def _run_fetch(
        self,
        kind: str,
        generation: int,
        page_number: int,
        params: tuple[str | None, str, str],
    ) -> bool:
        search, sort_by, sort_order = params
        started = time.monotonic()
        page: Page | None = None
        try:
            page = self.fetcher.fetch(page_number, self.page_limit, search, sort_by, sort_order)
            self.metrics.mark_fetch(kind, "success")
        except FetchFailure as exc:
            self.metrics.mark_fetch(kind, "failed")
            LOGGER.warning(
                "fetch_failed",
                extra={"kind": kind, "page": page_number, "error_type": type(exc).__name__, "error": str(exc)},
            )
        except Exception:
            self.metrics.mark_fetch(kind, "error")
            LOGGER.exception("fetch_unexpected_error", extra={"kind": kind, "page": page_number})
        finally:
            self.metrics.observe_fetch_duration(kind, time.monotonic() - started)

        return self._apply(kind, generation, page_number, page, params)

    def _apply(
        self,
        kind: str,
        generation: int,
        page_number: int,
        page: Page | None,
        params: tuple[str | None, str, str],
    ) -> bool:
        with self._idle:
            try:
                if generation != self._generation:
                    self.metrics.mark_stale_dropped(kind)
                    LOGGER.info(
                        "stale_result_dropped",
                        extra={"kind": kind, "generation": generation, "current_generation": self._generation},
                    )
                    return False

                if kind == KIND_FIRST:
                    self._apply_first(page, params)
                else:
                    self._apply_next(page_number, page)

                self.metrics.set_cached_photos(len(self._cache))
                return page is not None
            finally:
                self._in_flight -= 1
                self._idle.notify_all()

    def _apply_first(self, page: Page | None, params: tuple[str | None, str, str]) -> None:
        self._loading_first = False
        if page is None:
            # Keep the last good list on screen.
            self._error = FIRST_PAGE_ERROR
            return

        self._cache.replace(page)
        self._cache_params = params
        self._has_loaded = True
        self._refresh_display()
        LOGGER.info(
            "page_loaded",
            extra={
                "page": self._cache.current_page,
                "total_pages": self._cache.total_pages,
                "cached": len(self._cache),
                "displayed": len(self._displayed),
            },
        )

    def _apply_next(self, page_number: int, page: Page | None) -> None:
        self._loading_next = False
        if page is None:
            self._error = f"Failed to load page {page_number}."
            return

        added = self._cache.append(page, page_number)
        self._refresh_display()
        LOGGER.info(
            "page_loaded",
            extra={
                "page": self._cache.current_page,
                "total_pages": self._cache.total_pages,
                "added": added,
                "duplicates": len(page.photos) - added,
                "cached": len(self._cache),
                "displayed": len(self._displayed),
            },
        )
