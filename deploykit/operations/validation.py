"""Checks that values survive a trip through JSON without losing information."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

from deploykit.operations.hashing import to_json_value

_DEFAULT_LOGGER_NAME = "deploykit.operations"


def _has_custom_json(value: Any) -> bool:
    kind = type(value)
    return callable(getattr(kind, "to_json", None)) and callable(
        getattr(kind, "from_json", None)
    )


def _is_value_serializable(logger: logging.Logger, value: Any) -> bool:
    if value is None:
        return True
    # A type that encodes and decodes itself is trusted to do so faithfully.
    if _has_custom_json(value):
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            if f.metadata.get("json") == "-":
                continue
            if f.name.startswith("_"):
                logger.error(
                    "Struct contains unexported field: struct=%s field=%s",
                    type(value).__name__,
                    f.name,
                )
                return False
            if not _is_value_serializable(logger, getattr(value, f.name)):
                return False
        return True
    if isinstance(value, Mapping):
        return all(_is_value_serializable(logger, item) for item in value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return all(_is_value_serializable(logger, item) for item in value)
    return True


def is_serializable(logger: logging.Logger | None, value: Any) -> bool:
    """Return whether the value can be written as JSON and read back without loss.

    Dataclasses with private (underscore) fields are rejected unless those fields
    are marked ``metadata={"json": "-"}``. Types that define both ``to_json`` and
    ``from_json`` are assumed to be serializable.
    """
    log = logger if logger is not None else logging.getLogger(_DEFAULT_LOGGER_NAME)
    if not _is_value_serializable(log, value):
        return False
    try:
        to_json_value(value)
    except (TypeError, ValueError, RecursionError) as err:
        log.error("Failed to marshal value: %s", err)
        return False
    return True