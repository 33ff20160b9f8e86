"""
The value tree shared by every data source.

A value is one of None, bool, int, float, str, a list of values or a dict
mapping strings to values. Parsers produce richer types (tuples, dates,
bytes, integer keys); ``normalize`` folds them into this model.

Values held by a context snapshot are exposed through read-only views so
that a snapshot cannot be modified once built. ``thaw`` produces the plain
deep copy handed to the template engine.
"""

from __future__ import annotations

import collections.abc as _abc
import datetime as _datetime
import typing as _typing

Value: _typing.TypeAlias = _typing.Any
"""None | bool | int | float | str | list[Value] | dict[str, Value]."""


class FrozenMapping(_abc.Mapping[str, _typing.Any]):
    """
    Read-only view of a map value.

    Nested maps and lists are wrapped on access, so the whole tree is
    immutable through this view.

    Example:
        >>> frozen = FrozenMapping({"server": {"ports": [80, 443]}})
        >>> frozen["server"]["ports"][0]
        80
        >>> frozen["server"]["ports"][0] = 8080  # TypeError: immutable
    """

    __slots__ = ("_data",)

    def __init__(self, data: _abc.Mapping[str, _typing.Any]) -> None:
        self._data = data if isinstance(data, dict) else dict(data)

    def __getitem__(self, key: str) -> _typing.Any:
        return freeze(self._data[key])

    def __iter__(self) -> _typing.Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"FrozenMapping({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, _abc.Mapping):
            return dict(self) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        raise TypeError(f"unhashable type: '{type(self).__name__}'")


class FrozenSequence(_abc.Sequence[_typing.Any]):
    """Read-only view of a list value; nested containers are wrapped on access."""

    __slots__ = ("_data",)

    def __init__(self, data: _abc.Sequence[_typing.Any]) -> None:
        self._data = data if isinstance(data, list) else list(data)

    @_typing.overload
    def __getitem__(self, index: int) -> _typing.Any: ...

    @_typing.overload
    def __getitem__(self, index: slice) -> FrozenSequence: ...

    def __getitem__(self, index: int | slice) -> _typing.Any:
        value = self._data[index]
        if isinstance(index, slice):
            return FrozenSequence(value)
        return freeze(value)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"FrozenSequence({self._data!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            return NotImplemented
        if isinstance(other, _abc.Sequence):
            return list(self) == list(other)
        return NotImplemented

    def __hash__(self) -> int:
        raise TypeError(f"unhashable type: '{type(self).__name__}'")


def freeze(value: Value) -> Value:
    """
    Wrap containers in read-only views; scalars are returned unchanged.

    Example:
        >>> freeze({"a": [1, 2]})
        FrozenMapping({'a': [1, 2]})
        >>> freeze("text")
        'text'
    """
    if isinstance(value, (FrozenMapping, FrozenSequence)):
        return value
    if isinstance(value, _abc.Mapping):
        return FrozenMapping(value)
    if isinstance(value, _abc.Sequence) and not isinstance(value, (str, bytes)):
        return FrozenSequence(value)
    return value


def thaw(value: Value) -> Value:
    """Return a plain, independent deep copy (dicts and lists) of a value."""
    if isinstance(value, _abc.Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, _abc.Sequence) and not isinstance(value, (str, bytes)):
        return [thaw(item) for item in value]
    return value


def normalize(raw: _typing.Any) -> Value:
    """
    Fold parser output into the value model.

    - tuples and other sequences become lists
    - map keys become strings
    - dates and times become ISO 8601 strings
    - bytes become lists of integers

    Args:
        raw: Output of a YAML, TOML or JSON parser.

    Returns:
        The equivalent value.

    Raises:
        TypeError: If the input contains a type with no value equivalent.
    """
    if raw is None or isinstance(raw, (bool, int, float, str)):
        return raw
    if isinstance(raw, _abc.Mapping):
        return {str(key): normalize(item) for key, item in raw.items()}
    if isinstance(raw, (bytes, bytearray)):
        return list(raw)
    if isinstance(raw, (_datetime.date, _datetime.time)):
        return raw.isoformat()
    if isinstance(raw, (_abc.Sequence, _abc.Set)):
        return [normalize(item) for item in raw]
    raise TypeError(f"Unsupported value type: {type(raw).__name__}")


def nest(path: _abc.Sequence[str], value: Value) -> dict[str, Value]:
    """
    Build a nested map holding ``value`` at ``path``.

    Example:
        >>> nest(["server", "port"], 80)
        {'server': {'port': 80}}
    """
    if not path:
        raise ValueError("path must not be empty")
    result: Value = value
    for key in reversed(path):
        result = {key: result}
    return result
