# core/ejson.py
"""
Canonical JSON codec for values that plain JSON cannot carry.

Special shapes on the wire:
  datetime      -> {"$date": <epoch ms>}
  bytes         -> {"$binary": "<base64>"}
  inf / nan     -> {"$InfNaN": 1 | -1 | 0}
  uuid.UUID     -> {"$type": "uuid", "$value": "<hex>"}
  custom types  -> {"$type": <type_name()>, "$value": <to_json_value()>}
  a dict that looks like one of the above -> {"$escape": {...}}
"""
import base64
import json
import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict
from util.enums import ErrorMessage
from util.errors import DecodeFailure, InvalidArgument

UUID_TYPE = "uuid"

_custom_types: Dict[str, Callable[[Any], Any]] = {}
_NOT_SPECIAL = object()
_SINGLE_KEY_SPECIALS = ("$date", "$InfNaN", "$binary", "$escape")


def add_type(name: str, factory: Callable[[Any], Any]) -> None:
    """
    Register a custom type. Instances must expose `type_name()` and
    `to_json_value()`; `factory` rebuilds one from its JSON value.
    """
    if name in _custom_types or name == UUID_TYPE:
        raise InvalidArgument(f"type {name} already present")
    _custom_types[name] = factory


def _is_custom(obj: Any) -> bool:
    return callable(getattr(obj, "type_name", None)) and callable(
        getattr(obj, "to_json_value", None)
    )


def _looks_special(obj: Dict[str, Any]) -> bool:
    if len(obj) == 1:
        return next(iter(obj)) in _SINGLE_KEY_SPECIALS
    return len(obj) == 2 and set(obj) == {"$type", "$value"}


# ---------------- Encoding ----------------


def _to_json_special(item: Any) -> Any:
    if isinstance(item, datetime):
        if item.tzinfo is None:
            item = item.replace(tzinfo=timezone.utc)
        return {"$date": int(round(item.timestamp() * 1000))}
    if isinstance(item, float) and not math.isfinite(item):
        sign = 0 if math.isnan(item) else (1 if item > 0 else -1)
        return {"$InfNaN": sign}
    if isinstance(item, (bytes, bytearray)):
        return {"$binary": base64.b64encode(bytes(item)).decode("ascii")}
    if isinstance(item, uuid.UUID):
        return {"$type": UUID_TYPE, "$value": item.hex}
    if _is_custom(item):
        return {"$type": item.type_name(), "$value": item.to_json_value()}
    if isinstance(item, dict) and _looks_special(item):
        return {"$escape": {k: to_json_value(v) for k, v in item.items()}}
    return _NOT_SPECIAL


def to_json_value(item: Any) -> Any:
    special = _to_json_special(item)
    if special is not _NOT_SPECIAL:
        return special
    if isinstance(item, dict):
        return {str(k): to_json_value(v) for k, v in item.items()}
    if isinstance(item, (list, tuple)):
        return [to_json_value(v) for v in item]
    return item


def stringify(value: Any, canonical: bool = False) -> str:
    # canonical=True sorts object keys so equal values serialize identically.
    return json.dumps(
        to_json_value(value),
        sort_keys=canonical,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


# ---------------- Decoding ----------------


def _from_json_special(item: Dict[str, Any]) -> Any:
    if len(item) == 1:
        (tag, raw), = item.items()
        if tag == "$date" and isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return datetime.fromtimestamp(raw / 1000, tz=timezone.utc)
        if tag == "$InfNaN" and raw in (1, -1, 0):
            return math.nan if raw == 0 else math.copysign(math.inf, raw)
        if tag == "$binary" and isinstance(raw, str):
            try:
                return base64.b64decode(raw, validate=True)
            except ValueError as e:
                raise DecodeFailure(ErrorMessage.BAD_SPECIAL_VALUE.format(tag)) from e
        if tag == "$escape" and isinstance(raw, dict):
            return {k: from_json_value(v) for k, v in raw.items()}
        return _NOT_SPECIAL

    if len(item) == 2 and set(item) == {"$type", "$value"}:
        name, raw = item["$type"], item["$value"]
        if name == UUID_TYPE:
            try:
                return uuid.UUID(str(raw))
            except ValueError as e:
                raise DecodeFailure(ErrorMessage.BAD_SPECIAL_VALUE.format(name)) from e
        factory = _custom_types.get(name)
        if factory is None:
            raise DecodeFailure(ErrorMessage.UNKNOWN_CUSTOM_TYPE.format(name))
        return factory(raw)
    return _NOT_SPECIAL


def from_json_value(item: Any) -> Any:
    if isinstance(item, dict):
        special = _from_json_special(item)
        if special is not _NOT_SPECIAL:
            return special
        return {k: from_json_value(v) for k, v in item.items()}
    if isinstance(item, list):
        return [from_json_value(v) for v in item]
    return item


def _reject_constant(name: str) -> Any:
    raise ValueError(name)


def parse(text: Any) -> Any:
    if not isinstance(text, str):
        raise DecodeFailure(ErrorMessage.NOT_JSON_TEXT.format(type(text).__name__))
    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except ValueError as e:
        raise DecodeFailure(ErrorMessage.INVALID_JSON.format(text[:40])) from e
    return from_json_value(value)


# ---------------- Comparison ----------------


def is_scalar(value: Any) -> bool:
    return value is None or isinstance(
        value, (str, bool, int, float, datetime, uuid.UUID)
    )


def bucket_key(value: Any) -> str:
    """
    Text key shared by every value that equals() treats as equal: integral
    floats fold onto ints and datetimes encode as UTC milliseconds.
    """
    if (
        isinstance(value, float)
        and math.isfinite(value)
        and value.is_integer()
    ):
        value = int(value)
    return stringify(value, canonical=True)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def equals(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    if a is None or b is None:
        return False
    # bool is an int subclass; true must not equal 1
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, datetime) and isinstance(b, datetime):
        return _as_utc(a) == _as_utc(b)
    if isinstance(a, (bytes, bytearray)) or isinstance(b, (bytes, bytearray)):
        return isinstance(a, (bytes, bytearray)) and isinstance(b, (bytes, bytearray)) and bytes(a) == bytes(b)
    if isinstance(a, dict) or isinstance(b, dict):
        if not (isinstance(a, dict) and isinstance(b, dict)) or set(a) != set(b):
            return False
        return all(equals(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        if not (isinstance(a, (list, tuple)) and isinstance(b, (list, tuple))):
            return False
        return len(a) == len(b) and all(equals(x, y) for x, y in zip(a, b))
    if callable(getattr(a, "equals", None)):
        return bool(a.equals(b))
    return bool(a == b)
