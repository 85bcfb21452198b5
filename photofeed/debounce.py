import threading
from typing import Any, Callable

TimerFactory = Callable[[float, Callable[[], None]], Any]


class Debouncer:
    """Runs a callback once input has been quiet for ``delay_s`` seconds.

    Each ``submit`` cancels the pending timer before arming a new one. The
    callback also checks its own generation, because a timer thread can
    already be running when ``cancel`` is called on it.
    """

    def __init__(
        self,
        delay_s: float,
        timer_factory: TimerFactory = threading.Timer,
        on_superseded: Callable[[], None] | None = None,
    ):
        self.delay_s = max(0.0, delay_s)
        self._timer_factory = timer_factory
        self._on_superseded = on_superseded
        self._lock = threading.Lock()
        self._timer: Any = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def submit(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._timer is not None:
                self._timer.cancel()
                if self._on_superseded:
                    self._on_superseded()

            timer = self._timer_factory(self.delay_s, lambda: self._fire(generation, callback))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
        timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self, generation: int, callback: Callable[[], None]) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        callback()
