# core/reactive_dict.py
from typing import Any, Dict, Optional
from core import ejson
from core.tracker import Dependency
from util.constants import GLOBAL_DICT_NAME

# Bucket of an unset key; a missing key and None share it.
NULL = ejson.bucket_key(None)


def _changed(dep: Optional[Dependency]) -> None:
    if dep is not None:
        dep.changed()


class ReactiveDict:
    """
    In-memory dictionary of serialized values with per-key, per-key-per-value
    and whole-dict dependencies.

    Per-value dependencies live in `key_value_deps[key][ejson.bucket_key(v)]`,
    so values that compare equal share one bucket.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name
        self.keys: Dict[str, str] = {}
        self.buckets: Dict[str, str] = {}
        self.key_deps: Dict[str, Dependency] = {}
        self.key_value_deps: Dict[str, Dict[str, Dependency]] = {}
        self.all_deps = Dependency()

    def __contains__(self, key: str) -> bool:
        return key in self.keys

    def __repr__(self) -> str:
        return f"ReactiveDict(name={self.name!r}, keys={len(self.keys)})"

    def ensure_key(self, key: str) -> None:
        if key not in self.key_deps:
            self.key_deps[key] = Dependency()
            self.key_value_deps[key] = {}

    def get(self, key: str, default: Any = None) -> Any:
        self.ensure_key(key)
        self.key_deps[key].depend()
        if key not in self.keys:
            return default
        return ejson.parse(self.keys[key])

    def set(self, key: str, value: Any) -> None:
        serialized = ejson.stringify(value, canonical=True)
        existed = key in self.keys
        is_new = not existed or serialized != self.keys[key]
        old_bucket = self.buckets.get(key, NULL)
        new_bucket = ejson.bucket_key(value)

        self.keys[key] = serialized
        self.buckets[key] = new_bucket

        if is_new:
            self.all_deps.changed()

        if is_new and key in self.key_deps:
            _changed(self.key_deps[key])
            buckets = self.key_value_deps[key]
            _changed(buckets.get(old_bucket))
            _changed(buckets.get(new_bucket))

    def _forget(self, key: str) -> None:
        self.keys.pop(key)
        old_bucket = self.buckets.pop(key, NULL)
        _changed(self.key_deps.get(key))
        buckets = self.key_value_deps.get(key) or {}
        _changed(buckets.get(old_bucket))
        _changed(buckets.get(NULL))

    def delete(self, key: str) -> bool:
        """Forget `key` entirely; returns False when it was never set."""
        if key not in self.keys:
            return False
        self._forget(key)
        self.all_deps.changed()
        return True

    def all(self) -> Dict[str, Any]:
        self.all_deps.depend()
        return {key: ejson.parse(value) for key, value in self.keys.items()}

    def clear(self) -> None:
        if not self.keys:
            return
        for key in list(self.keys):
            self._forget(key)
        self.all_deps.changed()


# Process-wide dictionary behind the default store; never torn down.
session_dict = ReactiveDict(GLOBAL_DICT_NAME)
