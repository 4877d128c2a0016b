# repository/base.py
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional
from pydantic import ValidationError
from model.envelope import Envelope

logger = logging.getLogger(__name__)


class DurableStore(ABC):
    """
    Flow:
    - Synchronous string-keyed get/store over some persistent medium.
    - Values are JSON values wrapped in an Envelope and written under `prefix + key`.
    - Missing, expired or unreadable entries all read back as None.
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # ---------------- Medium hooks ----------------

    @abstractmethod
    def _read_raw(self, full_key: str) -> Optional[str]: ...

    @abstractmethod
    def _write_raw(
        self, full_key: str, payload: str, expires: Optional[int] = None
    ) -> None: ...

    @abstractmethod
    def _delete_raw(self, full_key: str) -> int: ...

    # ---------------- Core API ----------------

    def get(self, key: str) -> Any:
        raw = self._read_raw(self._key(key))
        if raw is None:
            return None
        try:
            env = Envelope.model_validate_json(raw)
        except ValidationError:
            logger.warning("store.envelope.corrupt key=%s", key)
            return None
        if env.is_expired():
            self._delete_raw(self._key(key))
            return None
        return env.data

    def store(self, key: str, value: Any, expires: Optional[int] = None) -> None:
        payload = Envelope.wrap(value, expires).model_dump_json()
        self._write_raw(self._key(key), payload, expires)

    def remove(self, key: str) -> int:
        return self._delete_raw(self._key(key))
