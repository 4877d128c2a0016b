# model/lifetime.py
from enum import Enum
from typing import Dict, Optional, Tuple
from util.enums import ErrorMessage
from util.errors import InvalidArgument


class LifetimeType(str, Enum):
    TEMPORARY = "temporary"
    PERSISTENT = "persistent"
    AUTHENTICATED = "authenticated"


_T = LifetimeType.TEMPORARY
_P = LifetimeType.PERSISTENT
_A = LifetimeType.AUTHENTICATED

# (persist, auth, default) -> effective lifetime. None means "not given".
LIFETIME_TABLE: Dict[Tuple[Optional[bool], Optional[bool], LifetimeType], LifetimeType] = {
    # explicit persist=True: auth decides between the two durable tiers
    (True, True, _T): _A,
    (True, True, _P): _A,
    (True, True, _A): _A,
    (True, False, _T): _P,
    (True, False, _P): _P,
    (True, False, _A): _P,
    (True, None, _T): _P,
    (True, None, _P): _P,
    (True, None, _A): _P,
    # explicit persist=False: always memory-only
    (False, True, _T): _T,
    (False, True, _P): _T,
    (False, True, _A): _T,
    (False, False, _T): _T,
    (False, False, _P): _T,
    (False, False, _A): _T,
    (False, None, _T): _T,
    (False, None, _P): _T,
    (False, None, _A): _T,
    # persist omitted: the store default applies
    (None, True, _T): _T,
    (None, True, _P): _A,
    (None, True, _A): _A,
    (None, False, _T): _T,
    (None, False, _P): _P,
    (None, False, _A): _P,
    (None, None, _T): _T,
    (None, None, _P): _P,
    (None, None, _A): _A,
}


def resolve_lifetime(
    persist: Optional[bool], auth: Optional[bool], default: LifetimeType
) -> LifetimeType:
    key = (
        None if persist is None else bool(persist),
        None if auth is None else bool(auth),
        coerce_lifetime(default),
    )
    return LIFETIME_TABLE[key]


def coerce_lifetime(value: object) -> LifetimeType:
    try:
        return LifetimeType(value)
    except ValueError:
        raise InvalidArgument(ErrorMessage.UNKNOWN_LIFETIME.format(value)) from None
