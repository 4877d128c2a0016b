# service/migrations.py
"""
Version-gated upgrades of the durable value format for one namespace.

Both passes are idempotent: the stored data version only moves forward and a
pass whose target is already met returns without touching the store.
"""
import logging
from typing import Any, Iterator, List
from core import ejson
from repository.base import DurableStore
from repository.namespaces import data_version_key, ps_keys_key, psa_keys_key, slot_key
from util.constants import DataVersion
from util.errors import DecodeFailure
from util.timing import timed

logger = logging.getLogger(__name__)


def get_data_version(store: DurableStore, namespace: str) -> int:
    raw = store.get(data_version_key(namespace))
    if isinstance(raw, bool):
        return 0
    try:
        return int(raw or 0)
    except (TypeError, ValueError):
        logger.warning("migrate.version.unreadable ns=%r value=%r", namespace, raw)
        return 0


def _key_list(store: DurableStore, full_key: str) -> List[str]:
    keys = store.get(full_key)
    return [k for k in keys if isinstance(k, str)] if isinstance(keys, list) else []


def _tracked_keys(store: DurableStore, namespace: str) -> Iterator[str]:
    yield from _key_list(store, ps_keys_key(namespace))
    yield from _key_list(store, psa_keys_key(namespace))


def migrate_to_ejson(store: DurableStore, namespace: str) -> bool:
    """Rewrite raw stored values as canonical-encoded text (pre-0.1 data)."""
    if get_data_version(store, namespace) >= DataVersion.EJSON:
        return False

    with timed(logger, "migrate.ejson", ns=repr(namespace)) as stats:
        count = 0
        for key in _tracked_keys(store, namespace):
            raw: Any = store.get(slot_key(namespace, key))
            store.store(slot_key(namespace, key), ejson.stringify(raw))
            count += 1
        stats["keys"] = count
        store.store(data_version_key(namespace), DataVersion.EJSON_MARKER)
    return True


def migrate_3x_to_4x(store: DurableStore, namespace: str) -> bool:
    """
    Unwrap canonical-encoded text into the JSON value it encodes (0.3 -> 0.4).

    Values that do not decode are taken to be in the 0.4 format already.
    Known limitation: corrupt text is indistinguishable from such values and
    is left as it is.
    """
    if get_data_version(store, namespace) >= DataVersion.CURRENT:
        return False

    with timed(logger, "migrate.3x_to_4x", ns=repr(namespace)) as stats:
        converted = skipped = 0
        for key in _tracked_keys(store, namespace):
            raw = store.get(slot_key(namespace, key))
            try:
                parsed = ejson.parse(raw)
            except DecodeFailure:
                skipped += 1
                continue
            store.store(slot_key(namespace, key), ejson.to_json_value(parsed))
            converted += 1
        stats["converted"] = converted
        stats["skipped"] = skipped
        store.store(data_version_key(namespace), DataVersion.CURRENT)
    return True


def run_migrations(store: DurableStore, namespace: str) -> int:
    """Run every pass in order; returns the resulting data version."""
    if migrate_to_ejson(store, namespace):
        logger.info("migrate.ejson.applied ns=%r", namespace)
    if migrate_3x_to_4x(store, namespace):
        logger.info("migrate.3x_to_4x.applied ns=%r", namespace)
    return get_data_version(store, namespace)
