# core/lifecycle.py
import logging
from typing import Callable, List
from config.settings import settings

logger = logging.getLogger(__name__)


class Lifecycle:
    """
    Flow:
    - on_startup() queues callbacks until start().
    - After start(), callbacks run immediately, in the caller's turn.
    """

    def __init__(self, *, is_client: bool = True, started: bool = False) -> None:
        self.is_client = is_client
        self._started = started
        self._queue: List[Callable[[], None]] = []

    @property
    def started(self) -> bool:
        return self._started

    def on_startup(self, callback: Callable[[], None]) -> None:
        if self._started:
            callback()
        else:
            self._queue.append(callback)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        queued, self._queue = self._queue, []
        logger.info("lifecycle.start callbacks=%d", len(queued))
        for callback in queued:
            callback()


lifecycle = Lifecycle(is_client=settings.IS_CLIENT)
