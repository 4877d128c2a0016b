# core/tracker.py
"""
Small dependency-tracking engine.

A Computation runs a function and records every Dependency it touches via
depend(). When one of those dependencies calls changed(), the computation is
invalidated and queued; it re-runs on the next flush(), never inside changed().
"""
import itertools
import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ids = itertools.count(1)
_current: Optional["Computation"] = None
_pending: List["Computation"] = []
_in_flush = False

# Upper bound on back-to-back re-runs of one self-invalidating computation.
MAX_RERUNS = 1000


@contextmanager
def _running(computation: Optional["Computation"]) -> Iterator[None]:
    global _current
    previous = _current
    _current = computation
    try:
        yield
    finally:
        _current = previous


def is_active() -> bool:
    """True while some computation is (re)computing."""
    return _current is not None


def nonreactive(func: Callable[[], T]) -> T:
    with _running(None):
        return func()


def on_invalidate(callback: Callable[["Computation"], None]) -> None:
    if _current is None:
        raise RuntimeError("on_invalidate requires an active computation")
    _current.on_invalidate(callback)


class Computation:
    def __init__(self, func: Callable[["Computation"], None]) -> None:
        self._id = next(_ids)
        self._func = func
        self._on_invalidate: List[Callable[["Computation"], None]] = []
        self._recomputing = False
        self.stopped = False
        self.invalidated = False

        errored = True
        try:
            self._compute()
            errored = False
        finally:
            if errored:
                self.stop()

    @property
    def id(self) -> int:
        return self._id

    def on_invalidate(self, callback: Callable[["Computation"], None]) -> None:
        if self.invalidated:
            nonreactive(lambda: callback(self))
        else:
            self._on_invalidate.append(callback)

    def invalidate(self) -> None:
        if self.invalidated:
            return
        # Already re-running or stopped computations are not queued again.
        if not self._recomputing and not self.stopped:
            _pending.append(self)
        self.invalidated = True
        callbacks, self._on_invalidate = self._on_invalidate, []
        for cb in callbacks:
            nonreactive(lambda: cb(self))

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        self.invalidate()

    def _compute(self) -> None:
        self.invalidated = False
        with _running(self):
            self._func(self)

    def _needs_recompute(self) -> bool:
        return self.invalidated and not self.stopped

    def _recompute(self) -> None:
        # Changes made by the body to its own dependencies land here, not in
        # the pending queue, so keep going until the computation settles.
        self._recomputing = True
        try:
            reruns = 0
            while self._needs_recompute():
                if reruns >= MAX_RERUNS:
                    raise RuntimeError(
                        f"computation {self._id} re-invalidated itself {MAX_RERUNS} times"
                    )
                reruns += 1
                self._compute()
        finally:
            self._recomputing = False


class Dependency:
    """Something computations can depend on; changed() invalidates them all."""

    def __init__(self) -> None:
        self._dependents: Dict[int, Computation] = {}

    def depend(self, computation: Optional[Computation] = None) -> bool:
        """Returns True only when `computation` is newly added."""
        computation = computation or _current
        if computation is None:
            return False
        cid = computation.id
        if cid in self._dependents:
            return False
        self._dependents[cid] = computation
        computation.on_invalidate(lambda _c: self._dependents.pop(cid, None))
        return True

    def changed(self) -> None:
        for computation in list(self._dependents.values()):
            computation.invalidate()

    def has_dependents(self) -> bool:
        return bool(self._dependents)


def autorun(func: Callable[[Computation], None]) -> Computation:
    return Computation(func)


def flush() -> None:
    """Re-run every invalidated computation until none are pending."""
    global _in_flush
    if _in_flush:
        raise RuntimeError("flush() called while already flushing")
    _in_flush = True
    try:
        while _pending:
            computation = _pending.pop(0)
            try:
                computation._recompute()
            except Exception:
                logger.exception("tracker.recompute.error id=%d", computation.id)
                raise
    finally:
        _in_flush = False
