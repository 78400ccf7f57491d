"""Name/values filters for remote list and describe calls."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from .schema import Attribute, Kind, nested, set_of, string


class NameValuesFilters(Mapping[str, tuple[str, ...]]):
    """Immutable mapping of filter names to the values each one accepts.

    Accepts a mapping of name to a value or list of values, or the list of
    ``{"name": ..., "values": [...]}`` blocks produced by ``filter_schema``.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Any = None) -> None:
        self._data: dict[str, tuple[str, ...]] = _coerce(data)

    def __getitem__(self, name: str) -> tuple[str, ...]:
        return self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"NameValuesFilters({self.map()!r})"

    @classmethod
    def for_tags(cls, tags: Mapping[str, Any] | None) -> NameValuesFilters:
        """One ``tag:<key>`` filter per tag, matching its exact value."""
        return cls({f"tag:{k}": str(v) for k, v in (tags or {}).items()})

    def map(self) -> dict[str, list[str]]:
        return {name: list(values) for name, values in self._data.items()}

    def add(self, other: Any) -> NameValuesFilters:
        """Union with other; values for a shared name are appended once."""
        merged = {name: list(values) for name, values in self._data.items()}
        for name, values in _coerce(other).items():
            current = merged.setdefault(name, [])
            current.extend(v for v in values if v not in current)
        return NameValuesFilters(merged)

    def filters(self, name_key: str = "Name", values_key: str = "Values") -> list[dict[str, Any]]:
        """Request-shaped filter list, in insertion order."""
        return [{name_key: name, values_key: list(values)} for name, values in self._data.items()]


def _coerce(data: Any) -> dict[str, tuple[str, ...]]:
    if data is None:
        return {}
    if isinstance(data, NameValuesFilters):
        return dict(data._data)
    if isinstance(data, Mapping):
        return {str(name): _values(values) for name, values in data.items()}
    if isinstance(data, Iterable) and not isinstance(data, (str, bytes)):
        result: dict[str, tuple[str, ...]] = {}
        for block in data:
            if not isinstance(block, Mapping) or "name" not in block:
                raise TypeError(f"filter block must be a mapping with a name, got {block!r}")
            name = str(block["name"])
            seen = list(result.get(name, ()))
            seen.extend(v for v in _values(block.get("values")) if v not in seen)
            result[name] = tuple(seen)
        return result
    raise TypeError(f"cannot build filters from {type(data).__name__}")


def _values(values: Any) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        return (values,)
    return tuple(dict.fromkeys(str(v) for v in values))


def filter_schema() -> Attribute:
    """Schema for repeatable ``filter { name = ..., values = [...] }`` blocks."""
    return set_of(
        nested(
            {
                "name": string(required=True),
                "values": set_of(Kind.STRING, required=True),
            }
        ),
        optional=True,
    )
