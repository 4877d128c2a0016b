# util/timing.py
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator
import logging


@contextmanager
def timed(logger: logging.Logger, name: str, **kv: Any) -> Iterator[Dict[str, Any]]:
    """
    Usage:
      with timed(logger, "migrate.ejson", ns="foo") as stats:
          stats["keys"] = 3
    Emits one DEBUG on exit: "<name>.done ms=<int> ns=foo keys=3"
    """
    stats: Dict[str, Any] = dict(kv)
    t0 = time.perf_counter()
    try:
        yield stats
    finally:
        dt_ms = int((time.perf_counter() - t0) * 1000)
        suffix = "".join(f" {k}={v}" for k, v in stats.items())
        logger.debug("%s.done ms=%d%s", name, dt_ms, suffix)
