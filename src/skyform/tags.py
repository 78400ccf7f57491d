"""Tag engine — an immutable key/value algebra plus per-service marshalling."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PREFIXES: tuple[str, ...] = ("aws:",)


class KeyValueTags(Mapping[str, str]):
    """Immutable mapping of tag keys to values.

    Every operation returns a new instance; inputs are never mutated.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Any = None) -> None:
        self._data: dict[str, str] = _coerce(data)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return self._data == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._data.items()))

    def __repr__(self) -> str:
        return f"KeyValueTags({self._data!r})"

    def map(self) -> dict[str, str]:
        """Return a plain dict copy."""
        return dict(self._data)

    def keys_list(self) -> list[str]:
        return sorted(self._data)

    def merge(self, other: Any) -> KeyValueTags:
        """Right-biased union: values from other win."""
        return KeyValueTags({**self._data, **_coerce(other)})

    def ignore(self, other: Any) -> KeyValueTags:
        """Drop every key present in other (a tag set or an iterable of keys)."""
        keys = set(other.keys()) if isinstance(other, Mapping) else set(other or ())
        return KeyValueTags({k: v for k, v in self._data.items() if k not in keys})

    def ignore_prefixes(self, prefixes: Iterable[str]) -> KeyValueTags:
        prefixes = tuple(prefixes)
        if not prefixes:
            return self
        return KeyValueTags({k: v for k, v in self._data.items() if not k.startswith(prefixes)})

    def ignore_system(self, prefixes: Iterable[str] = DEFAULT_SYSTEM_PREFIXES) -> KeyValueTags:
        """Drop keys reserved by the cloud provider."""
        return self.ignore_prefixes(prefixes)

    def ignore_config(self, config: IgnoreTagsConfig | None) -> KeyValueTags:
        if config is None:
            return self
        return self.ignore(config.keys).ignore_prefixes(config.key_prefixes)

    def only(self, keys: Iterable[str]) -> KeyValueTags:
        wanted = set(keys)
        return KeyValueTags({k: v for k, v in self._data.items() if k in wanted})

    def removed(self, new: Any) -> KeyValueTags:
        """Tags in self whose keys are missing from new."""
        new_tags = _coerce(new)
        return KeyValueTags({k: v for k, v in self._data.items() if k not in new_tags})

    def updated(self, new: Any) -> KeyValueTags:
        """Tags in new that are absent from self or carry a different value."""
        new_tags = _coerce(new)
        return KeyValueTags({k: v for k, v in new_tags.items() if self._data.get(k) != v})

    def remove_defaults(self, defaults: DefaultTagsConfig | None) -> KeyValueTags:
        """Drop tags whose key and value both come from the provider defaults."""
        if defaults is None or not defaults.tags:
            return self
        return KeyValueTags(
            {k: v for k, v in self._data.items() if defaults.tags.get(k) != v}
        )

    def chunks(self, size: int) -> list[KeyValueTags]:
        """Split into pieces of at most size tags, for APIs with per-call limits."""
        if size <= 0:
            raise ValueError("chunk size must be positive")
        items = sorted(self._data.items())
        return [KeyValueTags(dict(items[i : i + size])) for i in range(0, len(items), size)]

    def url_encode(self) -> str:
        return urlencode(sorted(self._data.items()))


def _coerce(data: Any) -> dict[str, str]:
    if data is None:
        return {}
    if isinstance(data, KeyValueTags):
        return data.map()
    if isinstance(data, Mapping):
        return {_key(k): _value(v) for k, v in data.items()}
    if isinstance(data, str):
        raise TypeError("tags must be a mapping or a list, not a string")
    result: dict[str, str] = {}
    for item in data:
        if isinstance(item, str):
            result[_key(item)] = ""
        elif isinstance(item, Mapping):
            key = item.get("key", item.get("Key"))
            value = item.get("value", item.get("Value"))
            result[_key(key)] = _value(value)
        else:
            key, value = item
            result[_key(key)] = _value(value)
    return result


def _key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise ValueError(f"tag keys must be non-empty strings, got {key!r}")
    return key


def _value(value: Any) -> str:
    return "" if value is None else str(value)


def new(data: Any = None) -> KeyValueTags:
    return KeyValueTags(data)


# -- Configuration --


class DefaultTagsConfig(BaseModel):
    """Tags applied to every taggable resource unless overridden."""

    tags: dict[str, str] = Field(default_factory=dict)

    def merge_tags(self, tags: Any) -> KeyValueTags:
        return KeyValueTags(self.tags).merge(tags)


class IgnoreTagsConfig(BaseModel):
    """Tags the provider must neither report nor manage."""

    keys: list[str] = Field(default_factory=list)
    key_prefixes: list[str] = Field(default_factory=list)

    def is_ignored(self, key: str) -> bool:
        return key in self.keys or any(key.startswith(p) for p in self.key_prefixes)


def map_with(
    tags: Any,
    defaults: DefaultTagsConfig | None = None,
    ignore: IgnoreTagsConfig | None = None,
) -> KeyValueTags:
    """Provider defaults overlaid with explicit tags, minus ignored keys."""
    merged = defaults.merge_tags(tags) if defaults is not None else KeyValueTags(tags)
    return merged.ignore_config(ignore)


# -- Diff --


@dataclass(frozen=True)
class TagDiff:
    """Changes that turn one tag set into another."""

    to_remove: KeyValueTags = field(default_factory=KeyValueTags)
    to_add: KeyValueTags = field(default_factory=KeyValueTags)
    to_update: KeyValueTags = field(default_factory=KeyValueTags)

    def __bool__(self) -> bool:
        return bool(self.to_remove or self.to_add or self.to_update)

    def apply(self, tags: Any) -> KeyValueTags:
        """Apply the removals, additions and updates in that order."""
        return KeyValueTags(tags).ignore(self.to_remove).merge(self.to_add).merge(self.to_update)


def diff(old: Any, new_tags: Any, ignore: IgnoreTagsConfig | None = None) -> TagDiff:
    """Compute (to_remove, to_add, to_update) taking old to new.

    Keys matched by ignore are never removed, added or updated, so they
    survive on the remote untouched.
    """
    before = KeyValueTags(old).ignore_config(ignore)
    after = KeyValueTags(new_tags).ignore_config(ignore)
    return TagDiff(
        to_remove=before.removed(after),
        to_add=after.ignore(before),
        to_update=before.updated(after.only(before.keys())),
    )


def update_tags(
    identifier: str,
    old: Any,
    new_tags: Any,
    *,
    tag: Callable[[str, KeyValueTags], None],
    untag: Callable[[str, list[str]], None],
    ignore: IgnoreTagsConfig | None = None,
    system_prefixes: Iterable[str] = DEFAULT_SYSTEM_PREFIXES,
) -> TagDiff:
    """Drive a service's tag and untag calls so its tags go from old to new."""
    changes = diff(
        KeyValueTags(old).ignore_system(system_prefixes),
        KeyValueTags(new_tags).ignore_system(system_prefixes),
        ignore,
    )
    if changes.to_remove:
        logger.debug("Removing tags %s from %s", changes.to_remove.keys_list(), identifier)
        untag(identifier, changes.to_remove.keys_list())
    upserts = changes.to_add.merge(changes.to_update)
    if upserts:
        logger.debug("Setting tags %s on %s", upserts.keys_list(), identifier)
        tag(identifier, upserts)
    return changes


# -- Service marshallers --


@dataclass(frozen=True)
class Marshaller:
    to_native: Callable[[KeyValueTags], Any]
    from_native: Callable[[Any], KeyValueTags]


_marshallers: dict[str, Marshaller] = {}


def tag_marshaller(name: str, from_native: Callable[[Any], KeyValueTags] | None = None):
    """Register a function converting tags into a service's request shape."""

    def decorator(fn: Callable[[KeyValueTags], Any]):
        _marshallers[name] = Marshaller(to_native=fn, from_native=from_native or KeyValueTags)
        return fn

    return decorator


def marshal(tags: Any, service: str) -> Any:
    if service not in _marshallers:
        raise ValueError(f"Unknown tag format: '{service}'")
    return _marshallers[service].to_native(KeyValueTags(tags))


def unmarshal(service: str, native: Any) -> KeyValueTags:
    if service not in _marshallers:
        raise ValueError(f"Unknown tag format: '{service}'")
    return _marshallers[service].from_native(native)


@tag_marshaller("map")
def _to_map(tags: KeyValueTags) -> dict[str, str]:
    return tags.map()


@tag_marshaller("key_value_list")
def _to_key_value_list(tags: KeyValueTags) -> list[dict[str, str]]:
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


@tag_marshaller("key_value_lower")
def _to_key_value_lower(tags: KeyValueTags) -> list[dict[str, str]]:
    return [{"key": k, "value": v} for k, v in sorted(tags.items())]


@tag_marshaller("query_string", from_native=lambda s: KeyValueTags(_parse_query(s)))
def _to_query_string(tags: KeyValueTags) -> str:
    return tags.url_encode()


def _parse_query(query: str) -> list[tuple[str, str]]:
    return parse_qsl(query or "", keep_blank_values=True)
