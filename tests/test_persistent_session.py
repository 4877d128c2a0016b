"""Tests for PersistentSession: lifetimes, durability, clearing and defaults."""

import uuid
from datetime import datetime, timezone

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from core import ejson, tracker
from core.lifecycle import Lifecycle
from core.reactive_dict import session_dict
from model.lifetime import LifetimeType
from repository.memory_store import MemoryDurableStore
from repository.namespaces import data_version_key, ps_keys_key, psa_keys_key, slot_key
from service.persistent_session import PersistentSession
from tests_support import PREFIX, raw_slot
from util.errors import InvalidArgument


# ---------------- Construction ----------------


@pytest.mark.parametrize("namespace", [None, 42, "", b"bytes"])
def test_namespace_must_be_non_empty_string(make_session, namespace):
    with pytest.raises(InvalidArgument):
        PersistentSession(namespace, store=MemoryDurableStore(), identity=None)


def test_defaults_to_temporary(make_session):
    assert make_session().default_method is LifetimeType.TEMPORARY


def test_default_method_can_be_changed(make_session):
    session = make_session(default_method=LifetimeType.AUTHENTICATED)
    assert session.default_method is LifetimeType.AUTHENTICATED
    session.set("k", "v")
    assert session.get_psa_keys() == ["k"]


def test_unknown_default_method_is_rejected(make_session):
    with pytest.raises(InvalidArgument):
        make_session(default_method="forever")


def test_reserved_namespace_shares_global_dict(make_session, store):
    first = make_session("session")
    second = make_session("session")
    try:
        assert first.reactive_dict is session_dict
        assert second.reactive_dict is session_dict
        assert first.namespace == ""
        first.set_persistent("shared", 1)
        assert second.get("shared") == 1
        assert store.get(ps_keys_key("")) == ["shared"]
    finally:
        first.clear("shared")


def test_default_instance_is_wired():
    from service.session import session

    assert session.reactive_dict is session_dict
    session.set_persistent("testkey", 1)
    try:
        assert session.get("testkey") == 1
    finally:
        session.clear("testkey")


# ---------------- Get / set ----------------


def test_get_unset_returns_default(make_session):
    session = make_session()
    assert session.get("foobar") is None
    assert session.get("foobar", "fallback") == "fallback"


def test_get_falls_back_to_durable_slot(make_session, store):
    ns = uuid.uuid4().hex
    store.store(slot_key(ns, "foo"), "awesome")
    session = make_session(ns)
    assert session.get("foo") == "awesome"


@pytest.mark.parametrize("value", [0, False, "", None, 0.0, []])
def test_falsy_values_are_returned_verbatim(make_session, value):
    session = make_session()
    session.set("k", value)
    assert session.get("k", "MISSING") == value
    assert type(session.get("k", "MISSING")) is type(value)


@pytest.mark.parametrize("value", [0, False, ""])
def test_falsy_persistent_values_survive_restart(make_session, value):
    ns = uuid.uuid4().hex
    make_session(ns).set_persistent("k", value)
    restarted = make_session(ns)
    assert "k" in restarted.reactive_dict
    assert restarted.get("k", "MISSING") == value


def test_set_returns_nothing_and_reads_back(make_session):
    session = make_session()
    assert session.set("something", "amazing") is None
    assert session.get("something") == "amazing"


def test_set_persistent_tracks_key_in_persistent_list(make_session, store):
    session = make_session()
    session.set("k", "v", persist=True)
    assert session.get_ps_keys() == ["k"]
    assert session.get_psa_keys() == []
    assert store.get(slot_key(session.namespace, "k")) == "v"


def test_set_auth_tracks_key_in_auth_list(make_session):
    session = make_session()
    session.set("k", "v", persist=True, auth=True)
    assert session.get_psa_keys() == ["k"]
    assert session.get_ps_keys() == []


def test_key_moves_between_lists(make_session):
    session = make_session()
    session.set_persistent("k", 1)
    session.set_auth("k", 2)
    assert session.get_ps_keys() == []
    assert session.get_psa_keys() == ["k"]
    session.set_persistent("k", 3)
    assert session.get_ps_keys() == ["k"]
    assert session.get_psa_keys() == []


def test_temporary_write_nulls_durable_slot(make_session, store):
    session = make_session()
    session.set_persistent("k", "v")
    session.set_temp("k", "w")
    full_key = PREFIX + slot_key(session.namespace, "k")
    assert store.storage[full_key] == '{"data":null,"expires":null}'
    assert session.get_ps_keys() == []
    assert session.get("k") == "w"


def test_persistent_none_drops_key_from_lists(make_session):
    session = make_session()
    session.set_persistent("k", "v")
    session.set_persistent("k", None)
    assert session.get_ps_keys() == []
    assert session.get("k", "MISSING") is None


def test_set_many_applies_lifetime_to_every_pair(make_session):
    session = make_session()
    session.set_many({"a": 1, "b": 2}, persist=True)
    assert session.get_ps_keys() == ["a", "b"]
    assert session.all() == {"a": 1, "b": 2}


def test_persistent_key_list_is_namespaced(make_session, store):
    ns = uuid.uuid4().hex
    make_session(ns).set_persistent("foo", "bar")
    assert store.get(ps_keys_key(ns)) == ["foo"]
    assert store.get(ps_keys_key("")) is None


def test_namespaces_never_cross(make_session):
    foo = make_session()
    bar = make_session()
    foo.set("something", "amazing")
    bar.set("something", "awesome")
    assert foo.get("something") == "amazing"
    assert bar.get("something") == "awesome"


def test_structured_values_survive_restart(make_session):
    ns = uuid.uuid4().hex
    value = {
        "when": datetime(2021, 3, 4, 5, 6, 7, 123000, tzinfo=timezone.utc),
        "id": uuid.UUID("0f0e0d0c0b0a09080706050403020100"),
        "blob": b"\x00\x01",
        "list": [1, "two", None],
    }
    make_session(ns).set_persistent("v", value)
    assert make_session(ns).get("v") == value


# ---------------- Update / re-tiering ----------------


def test_update_keeps_auth_lifetime(make_session):
    session = make_session()
    session.set_auth("k", 1)
    session.update("k", 2)
    assert session.get("k") == 2
    assert session.get_psa_keys() == ["k"]


def test_update_keeps_persistent_lifetime(make_session):
    session = make_session()
    session.set_persistent("k", 1)
    session.update("k", 2)
    assert session.get_ps_keys() == ["k"]


def test_update_untracked_key_is_temporary(make_session):
    session = make_session(default_method=LifetimeType.PERSISTENT)
    session.update("k", 2)
    assert session.get_ps_keys() == []
    assert session.get("k") == 2


def test_make_persistent_and_back(make_session):
    session = make_session()
    session.set_temp("k", "v")
    session.make_persistent("k")
    assert session.get_ps_keys() == ["k"]
    session.make_auth("k")
    assert session.get_psa_keys() == ["k"]
    assert session.get_ps_keys() == []
    session.make_temp("k")
    assert session.get_psa_keys() == []
    assert session.get("k") == "v"


def test_make_persistent_on_missing_key_is_noop(make_session):
    session = make_session()
    session.make_persistent("ghost")
    assert session.get_ps_keys() == []
    assert "ghost" not in session.reactive_dict


# ---------------- Defaults ----------------


def test_set_default_only_writes_once(make_session):
    session = make_session()
    assert session.set_default("k", "v1") is None
    session.set_default("k", "v2")
    assert session.get("k") == "v1"


def test_set_default_respects_present_none(make_session):
    session = make_session()
    session.set("k", None)
    session.set_default("k", "x")
    assert session.get("k", "MISSING") is None


def test_set_default_many(make_session):
    session = make_session()
    session.set("room_id", "awesome")
    session.set_default_many({"id": "foobarid", "room_id": "foobarroomid"}, persist=True)
    assert session.get("id") == "foobarid"
    assert session.get("room_id") == "awesome"
    assert session.get_ps_keys() == ["id"]


def test_set_default_persistent_survives_dict_clear(make_session):
    session = make_session()
    session.set_default_many({"id": "foobarid", "room_id": "foobarroomid"}, True, False)
    session.reactive_dict.clear()
    assert session.get("id") == "foobarid"
    assert session.get("room_id") == "foobarroomid"


def test_set_default_persistent_keeps_durable_value(make_session, store):
    ns = uuid.uuid4().hex
    store.store(slot_key(ns, "foo"), "awesome")
    session = make_session(ns)
    session.set_default_persistent("foo", "foobarid")
    assert session.get("foo") == "awesome"


def test_set_default_variants_pick_lifetime(make_session):
    session = make_session()
    session.set_default_temp("t", 1)
    session.set_default_persistent("p", 1)
    session.set_default_auth("a", 1)
    assert session.get_ps_keys() == ["p"]
    assert session.get_psa_keys() == ["a"]
    assert session.all() == {"t": 1, "p": 1, "a": 1}


# ---------------- Clearing ----------------


def test_clear_all_keys(make_session):
    session = make_session()
    session.set("foobar", "woo")
    session.set_persistent("other", "x")
    assert len(session.reactive_dict.keys) == 2

    session.clear()

    assert session.reactive_dict.keys == {}
    assert session.all() == {}
    assert session.get("foobar") is None
    assert session.get("other") is None
    assert session.get_ps_keys() == []


def test_clear_single_key(make_session):
    session = make_session()
    session.set("foobar", "woo")
    session.set("barfoo", "oow")
    session.clear("foobar")
    assert list(session.reactive_dict.keys) == ["barfoo"]
    assert session.get("foobar") is None
    assert session.get("barfoo") == "oow"


def test_clear_list_of_keys(make_session):
    session = make_session()
    session.set("foobar", "woo")
    session.set("barfoo", "oow")
    session.set("keep", 1)
    session.clear(keys=["foobar", "barfoo"])
    assert session.all() == {"keep": 1}


def test_clear_mapping_of_keys(make_session):
    session = make_session()
    session.set("a", 1)
    session.set("b", 2)
    session.clear(keys={"a": "ignored"})
    assert session.all() == {"b": 2}


def test_clear_empty_list_clears_nothing(make_session):
    session = make_session()
    session.set("a", 1)
    session.clear(keys=[])
    assert session.all() == {"a": 1}


def test_clear_auth(make_session):
    session = make_session()
    session.set_auth("foobar", "bork")
    session.set_persistent("keep", 1)
    session.clear_auth()
    assert session.get("foobar") is None
    assert session.get("keep") == 1
    assert session.get_psa_keys() == []


def test_clear_persistent(make_session):
    session = make_session()
    session.set_persistent("p", 1)
    session.set_auth("a", 1)
    session.set_temp("t", 1)
    session.clear_persistent()
    assert session.all() == {"a": 1, "t": 1}


def test_clear_temp(make_session):
    session = make_session()
    session.set_persistent("p", 1)
    session.set_auth("a", 1)
    session.set_temp("t", 1)
    session.clear_temp()
    assert session.all() == {"p": 1, "a": 1}


# ---------------- all() ----------------


def test_all_includes_rehydrated_and_new_keys(make_session, store):
    ns = uuid.uuid4().hex
    store.store(slot_key(ns, "foo"), "awesome")
    store.store(ps_keys_key(ns), ["foo"])
    store.store(data_version_key(ns), 4)

    session = make_session(ns)
    assert session.get("foo") == "awesome"

    session.set("bar", "thing")
    session.set_default_persistent("foobar", "stuff")
    session.set_auth("foobarfoo", "fact")
    session.set_persistent("barfoobar", "entity")

    assert session.all() == {
        "foo": "awesome",
        "bar": "thing",
        "foobar": "stuff",
        "foobarfoo": "fact",
        "barfoobar": "entity",
    }


def test_all_invalidates_on_set_and_clear(make_session):
    session = make_session()
    snapshots = []
    c = tracker.autorun(lambda comp: snapshots.append(session.all()))
    session.set("a", 1)
    tracker.flush()
    session.clear("a")
    tracker.flush()
    assert snapshots == [{}, {"a": 1}, {}]
    c.stop()


def test_get_invalidates_key_observers(make_session):
    session = make_session()
    seen = []
    c = tracker.autorun(lambda comp: seen.append(session.get("k")))
    session.set("other", 1)
    tracker.flush()
    session.set("k", "v")
    tracker.flush()
    session.clear("k")
    tracker.flush()
    assert seen == [None, "v", None]
    c.stop()


# ---------------- Startup ----------------


def test_rehydrates_persistent_and_auth_keys(make_session):
    ns = uuid.uuid4().hex
    first = make_session(ns)
    first.set_persistent("p", "pv")
    first.set_auth("a", "av")
    first.set_temp("t", "tv")

    restarted = make_session(ns)
    assert restarted.all() == {"p": "pv", "a": "av"}
    assert restarted.get_ps_keys() == ["p"]
    assert restarted.get_psa_keys() == ["a"]


def test_rehydration_waits_for_startup(store, identity):
    ns = uuid.uuid4().hex
    store.store(ps_keys_key(ns), ["k"])
    store.store(slot_key(ns, "k"), "v")
    store.store(data_version_key(ns), 4)

    pending = Lifecycle(is_client=True)
    session = PersistentSession(ns, store=store, identity=None, lifecycle=pending)
    assert "k" not in session.reactive_dict

    pending.start()
    assert session.all() == {"k": "v"}


def test_no_rehydration_outside_client(store):
    ns = uuid.uuid4().hex
    store.store(ps_keys_key(ns), ["k"])
    store.store(slot_key(ns, "k"), "v")
    server = Lifecycle(is_client=False, started=True)
    session = PersistentSession(ns, store=store, identity=None, lifecycle=server)
    assert session.all() == {}
    assert store.get(data_version_key(ns)) is None


def test_rehydration_skips_empty_slots(make_session, store):
    ns = uuid.uuid4().hex
    store.store(ps_keys_key(ns), ["empty", "k"])
    store.store(slot_key(ns, "k"), "v")
    session = make_session(ns)
    assert session.all() == {"k": "v"}


def test_rehydration_isolates_bad_keys(make_session, store):
    ns = uuid.uuid4().hex
    store.store(data_version_key(ns), 4)
    store.store(ps_keys_key(ns), ["bad", "corrupt", "good"])
    store.store(slot_key(ns, "bad"), {"$type": "never-registered", "$value": 1})
    raw_slot(store, ns, "corrupt", "{{{")
    store.store(slot_key(ns, "good"), "ok")

    session = make_session(ns)

    assert session.get("good") == "ok"
    assert session.get("bad") == {"$type": "never-registered", "$value": 1}
    assert "corrupt" not in session.reactive_dict


@pytest.mark.parametrize("error", [ValueError, TypeError, KeyError])
def test_rehydration_survives_a_failing_type_factory(make_session, store, error):
    type_name = f"exploding-{error.__name__}"

    def explode(raw):
        raise error(raw)

    ejson.add_type(type_name, explode)
    ns = uuid.uuid4().hex
    store.store(data_version_key(ns), 4)
    store.store(ps_keys_key(ns), ["boom"])
    store.store(psa_keys_key(ns), ["after"])
    store.store(slot_key(ns, "boom"), {"$type": type_name, "$value": 1})
    store.store(slot_key(ns, "after"), "fine")

    session = make_session(ns)

    assert "boom" not in session.reactive_dict
    assert session.all() == {"after": "fine"}
    assert session.get_ps_keys() == ["boom"]


def test_legacy_data_is_migrated_on_construction(make_session, store):
    raw_slot(store, "foo", "a", '{"data":"[]","expires":null}')
    store.store(ps_keys_key("foo"), ["a"])
    store.store(data_version_key("foo"), 1)

    session = make_session("foo")

    assert session.get("a") == []
    assert store.get(data_version_key("foo")) == 4


def test_existing_memory_value_wins_over_rehydration(store, identity):
    ns = uuid.uuid4().hex
    store.store(ps_keys_key(ns), ["k"])
    store.store(slot_key(ns, "k"), "durable")
    store.store(data_version_key(ns), 4)

    pending = Lifecycle(is_client=True)
    session = PersistentSession(ns, store=store, identity=None, lifecycle=pending)
    session.reactive_dict.set("k", "memory")
    pending.start()

    assert session.get("k") == "memory"


# ---------------- Logout ----------------


def test_logout_clears_auth_keys(make_session, identity):
    session = make_session()
    identity.login("u1")
    tracker.flush()
    session.set_auth("token", "abc")
    session.set_persistent("theme", "dark")

    identity.logout()
    tracker.flush()

    assert session.get("token") is None
    assert session.get_psa_keys() == []
    assert session.get("theme") == "dark"


def test_logged_out_start_does_not_clear(make_session, identity):
    session = make_session()
    session.set_auth("token", "abc")
    identity.logout()
    tracker.flush()
    assert session.get("token") == "abc"


def test_login_switch_does_not_clear(make_session, identity):
    session = make_session()
    identity.login("u1")
    tracker.flush()
    session.set_auth("token", "abc")
    identity.login("u2")
    tracker.flush()
    assert session.get("token") == "abc"


def test_without_identity_nothing_is_watched(store, lifecycle, identity):
    session = PersistentSession("noid", store=store, lifecycle=lifecycle, identity=None)
    identity.login("u1")
    tracker.flush()
    session.set_auth("token", "abc")
    identity.logout()
    tracker.flush()
    assert session.get("token") == "abc"


def test_stopped_session_ignores_logout(make_session, identity):
    session = make_session()
    identity.login("u1")
    tracker.flush()
    session.set_auth("token", "abc")
    session.stop()
    identity.logout()
    tracker.flush()
    assert session.get("token") == "abc"


def test_auth_key_cleared_after_logout_and_restart(make_session, identity):
    ns = uuid.uuid4().hex
    identity.login("u1")
    session = make_session(ns)
    session.set("k", "v", persist=True, auth=True)
    identity.logout()
    tracker.flush()
    assert make_session(ns).get("k") is None


# ---------------- Properties ----------------

json_values = st.recursive(
    st.one_of(
        st.none(),
        st.booleans(),
        st.integers(min_value=-(2**53), max_value=2**53),
        st.text(max_size=10),
    ),
    lambda children: st.lists(children, max_size=3)
    | st.dictionaries(st.text(max_size=5), children, max_size=3),
    max_leaves=8,
)


@given(key=st.text(min_size=1, max_size=10), value=json_values.filter(lambda v: v is not None))
@settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_persistent_round_trip_through_restart(key, value):
    store = MemoryDurableStore(prefix=PREFIX)
    started = Lifecycle(is_client=True, started=True)

    first = PersistentSession("prop", store=store, lifecycle=started, identity=None)
    first.set(key, value, persist=True)
    assert first.get(key) == value
    assert key in first.get_ps_keys()
    assert key not in first.get_psa_keys()

    second = PersistentSession("prop", store=store, lifecycle=started, identity=None)
    assert second.get(key) == value
    assert second.all() == {key: value}


@given(keys=st.lists(st.text(min_size=1, max_size=6), unique=True, max_size=6))
@settings(max_examples=40, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_clear_always_empties(keys):
    session = PersistentSession(
        "prop-clear",
        store=MemoryDurableStore(),
        lifecycle=Lifecycle(started=True),
        identity=None,
    )
    for i, key in enumerate(keys):
        session.set(key, i, persist=bool(i % 2), auth=bool(i % 3 == 0))
    session.clear()
    assert session.all() == {}
    assert all(session.get(key) is None for key in keys)
    assert session.get_ps_keys() == [] and session.get_psa_keys() == []
