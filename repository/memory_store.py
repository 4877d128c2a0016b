# repository/memory_store.py
from typing import Dict, Optional
from repository.base import DurableStore


class MemoryDurableStore(DurableStore):
    """
    Process-local backing store. `storage` maps full keys to raw envelope text,
    the same shape a browser's localStorage would hold.
    """

    def __init__(self, prefix: str = "", storage: Optional[Dict[str, str]] = None) -> None:
        super().__init__(prefix)
        self.storage: Dict[str, str] = {} if storage is None else storage

    def _read_raw(self, full_key: str) -> Optional[str]:
        return self.storage.get(full_key)

    def _write_raw(
        self, full_key: str, payload: str, expires: Optional[int] = None
    ) -> None:
        # Expiry is carried inside the envelope and checked on read.
        self.storage[full_key] = payload

    def _delete_raw(self, full_key: str) -> int:
        return 1 if self.storage.pop(full_key, None) is not None else 0

    def clear(self) -> None:
        self.storage.clear()
