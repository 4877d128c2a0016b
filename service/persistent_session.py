# service/persistent_session.py
import logging
from typing import Any, Iterable, List, Mapping, Optional
from config.settings import settings
from config.store import get_store
from core import ejson, tracker
from core.identity import UserIdentity, current_user
from core.lifecycle import Lifecycle, lifecycle as default_lifecycle
from core.reactive_dict import ReactiveDict, session_dict
from core.tracker import Computation, Dependency
from model.lifetime import LifetimeType, coerce_lifetime, resolve_lifetime
from repository.base import DurableStore
from repository.namespaces import ps_keys_key, psa_keys_key, slot_key
from service.migrations import run_migrations
from util.constants import DEFAULT_NAMESPACE
from util.enums import ErrorMessage
from util.errors import DecodeFailure, InvalidArgument

logger = logging.getLogger(__name__)

_MISSING = object()


class PersistentSession:
    """
    Reactive key-value store whose keys live for one of three lifetimes:

    - temporary: in memory only
    - persistent: written through to the durable store, restored on startup
    - authenticated: like persistent, but cleared when the user logs out

    Lifetime is not stored on the value; it is membership in one of two
    durable key lists (`__PSKEYS__<ns>` / `__PSAKEYS__<ns>`).
    """

    def __init__(
        self,
        namespace: str,
        *,
        store: Optional[DurableStore] = None,
        identity: Optional[UserIdentity] = current_user,
        lifecycle: Optional[Lifecycle] = None,
        default_method: Optional[LifetimeType] = None,
    ) -> None:
        if not isinstance(namespace, str) or not namespace:
            raise InvalidArgument(ErrorMessage.NAMESPACE_NOT_STRING.value)

        # The reserved namespace shares the global dict and has no key prefix.
        if namespace == DEFAULT_NAMESPACE:
            self._namespace = ""
            self._dict = session_dict
        else:
            self._namespace = namespace
            self._dict = ReactiveDict(namespace)

        self._store = store if store is not None else get_store()
        self._identity = identity
        self._last_user_id: Optional[str] = None
        self._observer: Optional[Computation] = None
        self.default_method = coerce_lifetime(default_method or settings.DEFAULT_LIFETIME)

        lifecycle = lifecycle if lifecycle is not None else default_lifecycle
        if lifecycle.is_client:
            lifecycle.on_startup(self._on_startup)

        if identity is not None:
            self._observer = tracker.autorun(self._watch_identity)

    def __repr__(self) -> str:
        return f"PersistentSession(namespace={self._namespace!r})"

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def reactive_dict(self) -> ReactiveDict:
        return self._dict

    def stop(self) -> None:
        """Stop watching the user identity."""
        if self._observer is not None:
            self._observer.stop()
            self._observer = None

    # ---------------- Startup & logout ----------------

    def _on_startup(self) -> None:
        run_migrations(self._store, self._namespace)

        restored = 0
        for lifetime, keys in (
            (LifetimeType.PERSISTENT, self.get_ps_keys()),
            (LifetimeType.AUTHENTICATED, self.get_psa_keys()),
        ):
            for key in keys:
                if key in self._dict:
                    continue
                try:
                    restored += self._rehydrate_key(key)
                except Exception:
                    # One unreadable key never blocks the others.
                    logger.error(
                        "session.rehydrate.error ns=%r key=%s lifetime=%s",
                        self._namespace,
                        key,
                        lifetime.value,
                        exc_info=True,
                    )
        logger.info("session.rehydrate ns=%r keys=%d", self._namespace, restored)

    def _rehydrate_key(self, key: str) -> int:
        raw = self._store.get(self._slot(key))
        if raw is None:
            logger.debug("session.rehydrate.skip ns=%r key=%s", self._namespace, key)
            return 0
        # Memory only: the durable slot and key lists already hold it.
        self._dict.set(key, self._decode(key, raw))
        logger.debug("session.rehydrate.key ns=%r key=%s", self._namespace, key)
        return 1

    def _watch_identity(self, computation: Computation) -> None:
        user_id = self._identity.user_id()
        if user_id is None and self._last_user_id is not None:
            logger.info("session.logout.clear_auth ns=%r", self._namespace)
            tracker.nonreactive(self.clear_auth)
        self._last_user_id = user_id

    # ---------------- Durable storage ----------------

    def _slot(self, key: str) -> str:
        return slot_key(self._namespace, key)

    def _read_key_list(self, full_key: str) -> List[str]:
        keys = self._store.get(full_key)
        if not isinstance(keys, list):
            return []
        return [k for k in keys if isinstance(k, str)]

    def get_ps_keys(self) -> List[str]:
        return self._read_key_list(ps_keys_key(self._namespace))

    def get_psa_keys(self) -> List[str]:
        return self._read_key_list(psa_keys_key(self._namespace))

    def _persist(self, lifetime: LifetimeType, key: str, value: Any) -> None:
        ps_keys = [k for k in self.get_ps_keys() if k != key]
        psa_keys = [k for k in self.get_psa_keys() if k != key]

        if value is None or lifetime is LifetimeType.TEMPORARY:
            value = None
        elif lifetime is LifetimeType.PERSISTENT:
            ps_keys.append(key)
        else:
            psa_keys.append(key)

        self._store.store(ps_keys_key(self._namespace), ps_keys)
        self._store.store(psa_keys_key(self._namespace), psa_keys)
        self._store.store(self._slot(key), ejson.to_json_value(value))

    def _decode(self, key: str, raw: Any) -> Any:
        try:
            return ejson.from_json_value(raw)
        except DecodeFailure:
            logger.warning("session.decode.fallback ns=%r key=%s", self._namespace, key)
            return raw

    def _lifetime_of(self, key: str) -> LifetimeType:
        if key in self.get_psa_keys():
            return LifetimeType.AUTHENTICATED
        if key in self.get_ps_keys():
            return LifetimeType.PERSISTENT
        return LifetimeType.TEMPORARY

    # ---------------- Reads ----------------

    def get(self, key: str, default: Any = None) -> Any:
        """
        In-memory value first (registering a dependency on `key`), then the
        durable slot. `default` only when neither holds anything.
        """
        value = self._dict.get(key, _MISSING)
        if value is not _MISSING:
            return value
        raw = self._store.get(self._slot(key))
        if raw is None:
            return default
        return self._decode(key, raw)

    def all(self) -> dict:
        return self._dict.all()

    def equals(self, key: str, value: Any) -> bool:
        # Composite values have no canonical bucket key, so only scalars.
        if not ejson.is_scalar(value):
            raise InvalidArgument(ErrorMessage.EQUALS_NOT_SCALAR.value)

        bucket = ejson.bucket_key(value)

        if tracker.is_active():
            self._dict.ensure_key(key)
            buckets = self._dict.key_value_deps[key]
            dep = buckets.get(bucket)
            if dep is None:
                dep = buckets[bucket] = Dependency()
            if dep.depend():
                tracker.on_invalidate(
                    lambda _c: self._release_bucket(key, bucket, dep)
                )

        current = tracker.nonreactive(lambda: self.get(key))
        return ejson.equals(current, value)

    def _release_bucket(self, key: str, bucket: str, dep: Dependency) -> None:
        buckets = self._dict.key_value_deps.get(key)
        if buckets is None or buckets.get(bucket) is not dep:
            return
        if not dep.has_dependents():
            del buckets[bucket]

    # ---------------- Writes ----------------

    def set(
        self,
        key: str,
        value: Any,
        persist: Optional[bool] = None,
        auth: Optional[bool] = None,
    ) -> None:
        lifetime = resolve_lifetime(persist, auth, self.default_method)
        self._persist(lifetime, key, value)
        self._dict.set(key, value)
        logger.debug(
            "session.set ns=%r key=%s lifetime=%s", self._namespace, key, lifetime.value
        )

    def set_many(
        self,
        values: Mapping[str, Any],
        persist: Optional[bool] = None,
        auth: Optional[bool] = None,
    ) -> None:
        for key, value in values.items():
            self.set(key, value, persist, auth)

    def set_temporary(self, key: str, value: Any) -> None:
        self.set(key, value, False, False)

    set_temp = set_temporary

    def set_persistent(self, key: str, value: Any) -> None:
        self.set(key, value, True, False)

    def set_auth(self, key: str, value: Any) -> None:
        """Persistent, but removed on logout."""
        self.set(key, value, True, True)

    def update(self, key: str, value: Any = None) -> None:
        """Write a new value, keeping whatever lifetime `key` has now."""
        lifetime = self._lifetime_of(key)
        self.set(
            key,
            value,
            lifetime is not LifetimeType.TEMPORARY,
            lifetime is LifetimeType.AUTHENTICATED,
        )

    # ---------------- Re-tiering ----------------

    def _retier(self, key: str, persist: bool, auth: bool) -> None:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            logger.debug("session.retier.missing ns=%r key=%s", self._namespace, key)
            return
        self.set(key, value, persist, auth)

    def make_temp(self, key: str) -> None:
        self._retier(key, False, False)

    def make_persistent(self, key: str) -> None:
        self._retier(key, True, False)

    def make_auth(self, key: str) -> None:
        self._retier(key, True, True)

    # ---------------- Defaults ----------------

    def set_default(
        self,
        key: str,
        value: Any,
        persist: Optional[bool] = None,
        auth: Optional[bool] = None,
    ) -> None:
        if self.get(key, _MISSING) is _MISSING:
            self.set(key, value, persist, auth)

    def set_default_many(
        self,
        values: Mapping[str, Any],
        persist: Optional[bool] = None,
        auth: Optional[bool] = None,
    ) -> None:
        for key, value in values.items():
            self.set_default(key, value, persist, auth)

    def set_default_temp(self, key: str, value: Any) -> None:
        self.set_default(key, value, False, False)

    def set_default_persistent(self, key: str, value: Any) -> None:
        self.set_default(key, value, True, False)

    def set_default_auth(self, key: str, value: Any) -> None:
        self.set_default(key, value, True, True)

    # ---------------- Clearing ----------------

    def clear(
        self,
        key: Optional[str] = None,
        keys: Optional[Iterable[str]] = None,
    ) -> None:
        """
        clear()            -> every key in memory
        clear(key)         -> just that key
        clear(keys=[...])  -> exactly those keys (a mapping's keys also work)
        """
        if key is not None:
            targets = [key]
        elif keys is not None:
            targets = list(keys)
        else:
            targets = list(self._dict.keys)

        for target in targets:
            self.set(target, None, False, False)
            # Drop the key itself so it no longer shows up in all().
            self._dict.delete(target)

        if targets:
            logger.debug("session.clear ns=%r keys=%d", self._namespace, len(targets))

    def clear_temp(self) -> None:
        tracked = set(self.get_ps_keys()) | set(self.get_psa_keys())
        self.clear(keys=[k for k in self._dict.keys if k not in tracked])

    def clear_persistent(self) -> None:
        self.clear(keys=self.get_ps_keys())

    def clear_auth(self) -> None:
        self.clear(keys=self.get_psa_keys())
