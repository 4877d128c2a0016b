# config/store.py
from typing import Optional
from redis import Redis, from_url
from config.settings import settings
from repository.base import DurableStore
from repository.memory_store import MemoryDurableStore
from repository.redis_store import RedisDurableStore
from util.enums import StoreBackend

_store: Optional[DurableStore] = None
_client: Optional[Redis] = None


def get_redis() -> Redis:
    global _client
    if _client is None:
        _client = from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=False,  # the store decodes envelopes itself
            socket_keepalive=True,
            health_check_interval=30,
        )
        # Fail fast on startup if Redis is unreachable.
        _client.ping()
    return _client


def get_store() -> DurableStore:
    """Process-wide durable store chosen by STORE_BACKEND."""
    global _store
    if _store is None:
        if settings.STORE_BACKEND == StoreBackend.REDIS:
            _store = RedisDurableStore(get_redis(), prefix=settings.STORE_KEY_PREFIX)
        else:
            _store = MemoryDurableStore(prefix=settings.STORE_KEY_PREFIX)
    return _store


def close_store() -> None:
    global _client, _store
    if _client is not None:
        _client.close()
        _client = None
    _store = None
