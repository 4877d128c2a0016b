# repository/redis_store.py
from typing import Optional
from redis import Redis
from repository.base import DurableStore


class RedisDurableStore(DurableStore):
    """
    Redis-backed durable store. Envelope `expires` is mirrored onto the key TTL
    so Redis evicts expired entries on its own.
    """

    def __init__(self, client: Redis, prefix: str = "") -> None:
        super().__init__(prefix)
        self._client = client

    def _read_raw(self, full_key: str) -> Optional[str]:
        raw = self._client.get(full_key)
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)

    def _write_raw(
        self, full_key: str, payload: str, expires: Optional[int] = None
    ) -> None:
        if expires is None:
            self._client.set(full_key, payload.encode("utf-8"))
        else:
            self._client.set(full_key, payload.encode("utf-8"), px=int(expires))

    def _delete_raw(self, full_key: str) -> int:
        return int(self._client.delete(full_key))
