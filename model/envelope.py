# model/envelope.py
import time
from typing import Any
from pydantic import BaseModel


class Envelope(BaseModel):
    """
    On-disk wrapper for every durable value:
        {"data": <json value>, "expires": <epoch ms> | null}
    """

    data: Any = None
    expires: int | None = None

    @classmethod
    def wrap(cls, value: Any, expires: int | None = None) -> "Envelope":
        # `expires` is a lifetime in ms; stored as an absolute deadline.
        deadline = None if expires is None else int(time.time() * 1000) + int(expires)
        return cls(data=value, expires=deadline)

    def is_expired(self, now_ms: int | None = None) -> bool:
        if self.expires is None:
            return False
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        return self.expires <= now_ms
