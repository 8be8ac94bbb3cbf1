"""Helpers to work with (de)serializing of json."""

from __future__ import annotations

import asyncio
from _collections_abc import dict_keys, dict_values
from typing import Any, TypeVar

import orjson

from homedash.common.models.errors import InvalidDataError

JSON_DECODE_EXCEPTIONS = (orjson.JSONDecodeError,)

_T = TypeVar("_T", list, dict)


def get_serializable_value(obj: Any) -> Any:
    """Parse the value to its serializable equivalent."""
    if isinstance(obj, set | frozenset):
        # membership sets are emitted sorted so snapshots diff cleanly
        return sorted(get_serializable_value(x) for x in obj)
    if isinstance(obj, list | tuple | dict_values | dict_keys):
        return [get_serializable_value(x) for x in obj]
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if isinstance(obj, asyncio.Task):
        return None
    return obj


def json_dumps(data: Any, indent: bool = False) -> str:
    """Dump json string."""
    # dataclasses pass through to get_serializable_value so mashumaro handles them
    option = orjson.OPT_OMIT_MICROSECONDS | orjson.OPT_PASSTHROUGH_DATACLASS
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(
        data,
        default=get_serializable_value,
        option=option,
    ).decode("utf-8")


json_loads = orjson.loads


def json_loads_as(data: str | bytes, expected: type[_T], what: str) -> _T:
    """Load json and verify the top-level type, raise InvalidDataError otherwise."""
    try:
        result = json_loads(data)
    except JSON_DECODE_EXCEPTIONS as err:
        msg = f"invalid json for {what}: {err}"
        raise InvalidDataError(msg) from err
    if not isinstance(result, expected):
        msg = f"expected a {expected.__name__} for {what}, got {type(result).__name__}"
        raise InvalidDataError(msg)
    return result
