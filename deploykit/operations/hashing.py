"""Stable JSON encoding and hashing of an operation definition with its input."""

from __future__ import annotations

import base64
import dataclasses
import datetime as _dt
import enum
import hashlib
import json
import math
from collections.abc import Mapping, MutableMapping
from typing import Any

import semver

_MAX_PLAIN_FLOAT = 1e21


def _format_timestamp(moment: _dt.datetime) -> str:
    """Format a datetime the way RFC 3339 with nanoseconds does: no trailing zeros, Z for UTC."""
    text = moment.replace(microsecond=0, tzinfo=None).isoformat()
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    offset = moment.utcoffset()
    if offset is None:
        return text
    if offset == _dt.timedelta(0):
        return text + "Z"
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    total = abs(total)
    return f"{text}{sign}{total // 3600:02d}:{total % 3600 // 60:02d}"


def _json_key(key: Any) -> str:
    if isinstance(key, enum.Enum):
        key = key.value
    if isinstance(key, str):
        return key
    if isinstance(key, int) and not isinstance(key, bool):
        return str(key)
    raise TypeError(f"unsupported map key type: {type(key).__name__}")


def _dataclass_to_json(value: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in dataclasses.fields(value):
        name = f.metadata.get("json", f.name)
        if name == "-" or f.name.startswith("_"):
            continue
        out[name] = to_json_value(getattr(value, f.name))
    return out


def _dumps(data: Any, *, sort_keys: bool) -> str:
    return json.dumps(
        data, sort_keys=sort_keys, separators=(",", ":"), ensure_ascii=False, allow_nan=False
    )


def to_json_value(value: Any) -> Any:
    """Convert a value into plain JSON data: dicts, lists, strings, numbers, booleans, None.

    Raises ValueError for NaN or infinite floats and TypeError for values that
    have no JSON form, such as functions.
    """
    if isinstance(value, enum.Enum):
        return to_json_value(value.value)
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if math.isnan(value):
            raise ValueError("unsupported value: NaN")
        if math.isinf(value):
            raise ValueError(f"unsupported value: {'+Inf' if value > 0 else '-Inf'}")
        if value.is_integer() and abs(value) < _MAX_PLAIN_FLOAT:
            return int(value)
        return value
    to_json = getattr(value, "to_json", None)
    if callable(to_json) and not isinstance(value, type):
        return to_json_value(to_json())
    if isinstance(value, semver.Version):
        return str(value)
    if isinstance(value, _dt.datetime):
        return _format_timestamp(value)
    if isinstance(value, _dt.date):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _dataclass_to_json(value)
    if isinstance(value, Mapping):
        return {_json_key(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        items = [to_json_value(item) for item in value]
        return sorted(items, key=lambda item: _dumps(item, sort_keys=True))
    raise TypeError(f"unsupported type: {type(value).__name__}")


def canonical_json(value: Any) -> str:
    """Return compact JSON of the value with every object's keys sorted."""
    return _dumps(to_json_value(value), sort_keys=True)


def construct_unique_hash(
    cache: MutableMapping[str, str], definition: Any, value: Any
) -> str:
    """Return the SHA-256 hex digest identifying a definition run with a given input.

    Results are memoised in ``cache``, keyed by the encoded definition and input.
    """
    key = _dumps(to_json_value(definition), sort_keys=False) + canonical_json(value)
    cached = cache.get(key)
    if cached is not None:
        return cached
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    cache[key] = digest
    return digest