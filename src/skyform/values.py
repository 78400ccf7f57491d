"""Typed attribute values — one variant per schema kind.

State is held as a tree of these variants, always in lock-step with the
attribute's declared kind. ``coerce`` is the single entry point turning raw
Python data into values; ``flatten``/``expand`` convert to and from the
persisted ``a.b.0.c`` attribute-path layout.
"""

from __future__ import annotations

import json
import zlib
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

from .schema import Attribute, Kind

type Primitive = str | int | float | bool


class Value(ABC):
    """Base class of all attribute values."""

    kind: ClassVar[Kind]

    @abstractmethod
    def unwrap(self) -> Any:
        """Return the plain Python representation."""


@dataclass(frozen=True)
class StringValue(Value):
    kind: ClassVar[Kind] = Kind.STRING
    value: str

    def unwrap(self) -> str:
        return self.value


@dataclass(frozen=True)
class IntValue(Value):
    kind: ClassVar[Kind] = Kind.INT
    value: int

    def unwrap(self) -> int:
        return self.value


@dataclass(frozen=True)
class BoolValue(Value):
    kind: ClassVar[Kind] = Kind.BOOL
    value: bool

    def unwrap(self) -> bool:
        return self.value


@dataclass(frozen=True)
class FloatValue(Value):
    kind: ClassVar[Kind] = Kind.FLOAT
    value: float

    def unwrap(self) -> float:
        return self.value


@dataclass(frozen=True)
class ListValue(Value):
    kind: ClassVar[Kind] = Kind.LIST
    items: tuple[Value, ...] = ()

    def unwrap(self) -> list[Any]:
        return [item.unwrap() for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class SetValue(Value):
    """Set elements keyed by their set-hash, kept sorted by hash."""

    kind: ClassVar[Kind] = Kind.SET
    items: tuple[tuple[int, Value], ...] = ()

    def unwrap(self) -> list[Any]:
        return [item.unwrap() for _, item in self.items]

    def hashes(self) -> list[int]:
        return [h for h, _ in self.items]

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class MapValue(Value):
    kind: ClassVar[Kind] = Kind.MAP
    items: tuple[tuple[str, Value], ...] = ()

    def unwrap(self) -> dict[str, Any]:
        return {k: v.unwrap() for k, v in self.items}

    def get(self, key: str) -> Value | None:
        return dict(self.items).get(key)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class ObjectValue(Value):
    kind: ClassVar[Kind] = Kind.OBJECT
    fields: tuple[tuple[str, Value | None], ...] = ()

    def unwrap(self) -> dict[str, Any]:
        return {k: (v.unwrap() if v is not None else None) for k, v in self.fields}

    def get(self, name: str) -> Value | None:
        return dict(self.fields).get(name)


def hashcode(s: str) -> int:
    """Stable non-negative hash of a string."""
    return zlib.crc32(s.encode("utf-8"))


def default_set_hash(element: Any) -> int:
    return hashcode(json.dumps(element, sort_keys=True, default=str))


def _set_hash(attr: Attribute, element: Value) -> int:
    fn = attr.set_hash or default_set_hash
    return fn(element.unwrap())


# -- Coercion --


def coerce(attr: Attribute, raw: Any, path: str = "") -> Value | None:
    """Convert raw Python data into the value variant for attr's kind.

    The attribute's normalizer runs first. Raises TypeError or ValueError
    (naming the offending path) on a kind mismatch.
    """
    if raw is None:
        return None
    if attr.normalize is not None and not isinstance(raw, Value):
        raw = attr.normalize(raw)
        if raw is None:
            return None
    if isinstance(raw, Value):
        if raw.kind is not attr.kind:
            raise TypeError(f"{path}: expected {attr.kind}, got {raw.kind}")
        return raw

    if attr.kind is Kind.STRING:
        return StringValue(_as_string(raw, path))
    if attr.kind is Kind.INT:
        return IntValue(_as_int(raw, path))
    if attr.kind is Kind.FLOAT:
        return FloatValue(_as_float(raw, path))
    if attr.kind is Kind.BOOL:
        return BoolValue(_as_bool(raw, path))
    if attr.kind is Kind.LIST:
        return ListValue(tuple(_elements(attr, _as_sequence(raw, path), path)))
    if attr.kind is Kind.SET:
        return _keyed_set(attr, _elements(attr, _as_sequence(raw, path), path))
    if attr.kind is Kind.MAP:
        return _as_map(attr, raw, path)
    return _as_object(attr, raw, path)


def _keyed_set(attr: Attribute, elements: Iterable[Value]) -> SetValue:
    keyed: dict[int, Value] = {}
    for element in elements:
        keyed.setdefault(_set_hash(attr, element), element)
    return SetValue(tuple(sorted(keyed.items(), key=lambda kv: kv[0])))


def _elements(attr: Attribute, raw: Iterable[Any], path: str) -> Iterable[Value]:
    for i, item in enumerate(raw):
        value = coerce(attr.element, item, f"{path}.{i}")
        if value is None:
            raise ValueError(f"{path}.{i}: null elements are not allowed")
        yield value


def _as_string(raw: Any, path: str) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return str(raw)
    raise TypeError(f"{path}: expected a string, got {type(raw).__name__}")


def _as_int(raw: Any, path: str) -> int:
    if isinstance(raw, bool):
        raise TypeError(f"{path}: expected an integer, got bool")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"{path}: {raw!r} is not an integer") from None
    raise TypeError(f"{path}: expected an integer, got {type(raw).__name__}")


def _as_float(raw: Any, path: str) -> float:
    if isinstance(raw, bool):
        raise TypeError(f"{path}: expected a number, got bool")
    if isinstance(raw, (int, float)):
        return float(raw)
    if isinstance(raw, str):
        try:
            return float(raw)
        except ValueError:
            raise ValueError(f"{path}: {raw!r} is not a number") from None
    raise TypeError(f"{path}: expected a number, got {type(raw).__name__}")


def _as_bool(raw: Any, path: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    raise TypeError(f"{path}: expected a bool, got {type(raw).__name__}")


def _as_sequence(raw: Any, path: str) -> list[Any]:
    if isinstance(raw, (str, bytes, Mapping)):
        raise TypeError(f"{path}: expected a list, got {type(raw).__name__}")
    if isinstance(raw, (set, frozenset)):
        return sorted(raw, key=default_set_hash)
    if isinstance(raw, Iterable):
        return list(raw)
    raise TypeError(f"{path}: expected a list, got {type(raw).__name__}")


def _as_map(attr: Attribute, raw: Any, path: str) -> MapValue:
    if not isinstance(raw, Mapping):
        raise TypeError(f"{path}: expected a map, got {type(raw).__name__}")
    items = []
    for key in sorted(raw):
        value = coerce(attr.element, raw[key], f"{path}.{key}")
        if value is not None:
            items.append((str(key), value))
    return MapValue(tuple(items))


def _as_object(attr: Attribute, raw: Any, path: str) -> ObjectValue:
    # HCL decodes a nested block as a one-element list
    if isinstance(raw, list) and len(raw) == 1 and isinstance(raw[0], Mapping):
        raw = raw[0]
    if not isinstance(raw, Mapping):
        raise TypeError(f"{path}: expected an object, got {type(raw).__name__}")
    unknown = set(raw) - set(attr.fields)
    if unknown:
        raise ValueError(f"{path}: unsupported argument(s) {', '.join(sorted(unknown))}")
    fields = []
    for name, field_attr in attr.fields.items():
        value = raw.get(name)
        if value is None and field_attr.default is not None:
            value = field_attr.default
        fields.append((name, coerce(field_attr, value, f"{path}.{name}")))
    return ObjectValue(tuple(fields))


def unwrap(value: Value | None) -> Any:
    return None if value is None else value.unwrap()


def is_empty(value: Value | None) -> bool:
    if value is None:
        return True
    if isinstance(value, (ListValue, SetValue, MapValue)):
        return len(value) == 0
    return False


def values_equal(a: Value | None, b: Value | None) -> bool:
    """Kind-aware equality; an unset collection equals an empty one."""
    if is_empty(a) and is_empty(b) and (a is None or b is None or a.kind is b.kind):
        return True
    return a == b


# -- Persisted layout --


def flatten(
    schema: Mapping[str, Attribute], values: Mapping[str, Value | None]
) -> dict[str, Primitive]:
    """Flatten values into ``a.b.0.c`` paths; ``.#`` counts lists/sets, ``.%`` maps."""
    flat: dict[str, Primitive] = {}
    for name in schema:
        value = values.get(name)
        if value is not None:
            _flatten_into(flat, name, value)
    return flat


def _flatten_into(flat: dict[str, Primitive], prefix: str, value: Value) -> None:
    if isinstance(value, (StringValue, IntValue, FloatValue, BoolValue)):
        flat[prefix] = value.value
    elif isinstance(value, ListValue):
        flat[f"{prefix}.#"] = len(value.items)
        for i, item in enumerate(value.items):
            _flatten_into(flat, f"{prefix}.{i}", item)
    elif isinstance(value, SetValue):
        flat[f"{prefix}.#"] = len(value.items)
        for h, item in value.items:
            _flatten_into(flat, f"{prefix}.{h}", item)
    elif isinstance(value, MapValue):
        flat[f"{prefix}.%"] = len(value.items)
        for k, item in value.items:
            _flatten_into(flat, f"{prefix}.{k}", item)
    elif isinstance(value, ObjectValue):
        for k, item in value.fields:
            if item is not None:
                _flatten_into(flat, f"{prefix}.{k}", item)


def expand(
    schema: Mapping[str, Attribute], flat: Mapping[str, Primitive]
) -> dict[str, Value | None]:
    """Inverse of flatten."""
    return {name: _expand(attr, name, flat) for name, attr in schema.items()}


def _child_segments(flat: Mapping[str, Primitive], prefix: str, *, whole: bool) -> list[str]:
    start = f"{prefix}."
    segments: list[str] = []
    for key in flat:
        if not key.startswith(start):
            continue
        rest = key[len(start) :]
        segment = rest if whole else rest.split(".", 1)[0]
        if segment not in ("#", "%") and segment not in segments:
            segments.append(segment)
    return segments


def _expand(attr: Attribute, prefix: str, flat: Mapping[str, Primitive]) -> Value | None:
    if attr.kind.is_primitive:
        return coerce(attr, flat.get(prefix), prefix)
    if attr.kind is Kind.OBJECT:
        if not _child_segments(flat, prefix, whole=False):
            return None
        fields = tuple(
            (name, _expand(field_attr, f"{prefix}.{name}", flat))
            for name, field_attr in attr.fields.items()
        )
        return ObjectValue(fields)

    elem = attr.element
    if attr.kind is Kind.LIST:
        count = flat.get(f"{prefix}.#")
        if count is None:
            return None
        items = tuple(_expand(elem, f"{prefix}.{i}", flat) for i in range(int(count)))
        return ListValue(tuple(item for item in items if item is not None))
    if attr.kind is Kind.SET:
        count = flat.get(f"{prefix}.#")
        if count is None:
            return None
        segments = _child_segments(flat, prefix, whole=False)
        # elements are already normalized values; only re-key them
        elements = (_expand(elem, f"{prefix}.{seg}", flat) for seg in segments)
        return _keyed_set(attr, (item for item in elements if item is not None))
    # map
    if flat.get(f"{prefix}.%") is None:
        return None
    segments = _child_segments(flat, prefix, whole=elem.kind.is_primitive)
    return MapValue(
        tuple(
            (seg, value)
            for seg in sorted(segments)
            if (value := _expand(elem, f"{prefix}.{seg}", flat)) is not None
        )
    )
