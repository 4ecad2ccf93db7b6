import heapq
import itertools
import logging
from time import monotonic
from typing import Callable, List, Protocol, Tuple

logger = logging.getLogger("quizbank")

class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> None: ...

class DeferredScheduler:
    """Cooperative timer queue.

    Nothing runs on its own: the owning loop calls ``run_due`` and every
    callback whose deadline has passed runs on the caller's thread.
    """

    def __init__(self, clock: Callable[[], float] = monotonic) -> None:
        self.clock = clock
        self._queue: List[Tuple[float, int, Callable[[], None]]] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        heapq.heappush(self._queue, (self.clock() + max(delay, 0.0), next(self._seq), callback))

    def pending(self) -> int:
        return len(self._queue)

    def run_due(self) -> int:
        now = self.clock()
        ran = 0
        while self._queue and self._queue[0][0] <= now:
            _, _, callback = heapq.heappop(self._queue)
            callback()
            ran += 1
        if ran:
            logger.debug({"event": "deferred_calls_ran", "count": ran})
        return ran
