"""Diff computation between observed state and desired configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .context import Context
from .schema import Attribute, Kind
from .tags import map_with
from .values import ListValue, ObjectValue, Value, coerce, unwrap, values_equal

logger = logging.getLogger(__name__)

SENSITIVE_PLACEHOLDER = "(sensitive value)"
COMPUTED_PLACEHOLDER = "(known after apply)"


@dataclass(frozen=True)
class AttributeDiff:
    old: Value | None
    new: Value | None
    requires_new: bool = False
    sensitive: bool = False
    new_computed: bool = False


@dataclass
class InstanceDiff:
    attributes: dict[str, AttributeDiff] = field(default_factory=dict)

    @property
    def requires_new(self) -> bool:
        return any(a.requires_new for a in self.attributes.values())

    def __bool__(self) -> bool:
        return bool(self.attributes)

    def changed(self) -> list[str]:
        return sorted(self.attributes)

    def render(self) -> list[str]:
        """Human-readable lines, with sensitive values masked."""
        lines = []
        for name in self.changed():
            change = self.attributes[name]
            old = _render_value(change.old, change.sensitive)
            if change.new_computed:
                new = COMPUTED_PLACEHOLDER
            else:
                new = _render_value(change.new, change.sensitive)
            suffix = " (forces new resource)" if change.requires_new else ""
            lines.append(f"{name}: {old} => {new}{suffix}")
        return lines

    def __str__(self) -> str:
        return "\n".join(self.render())


def _render_value(value: Value | None, sensitive: bool) -> str:
    if sensitive and value is not None:
        return SENSITIVE_PLACEHOLDER
    return repr(unwrap(value))


def _nested_requires_new(attr: Attribute, old: Value | None, new: Value | None) -> bool:
    """True if a force-new field nested inside an object or list of objects changed."""
    if attr.kind is Kind.OBJECT:
        old_fields = old if isinstance(old, ObjectValue) else ObjectValue()
        new_fields = new if isinstance(new, ObjectValue) else ObjectValue()
        for name, field_attr in attr.fields.items():
            a, b = old_fields.get(name), new_fields.get(name)
            if values_equal(a, b):
                continue
            if field_attr.force_new or _nested_requires_new(field_attr, a, b):
                return True
        return False
    if attr.kind is Kind.LIST and attr.elem is not None and attr.elem.kind is Kind.OBJECT:
        old_items = old.items if isinstance(old, ListValue) else ()
        new_items = new.items if isinstance(new, ListValue) else ()
        for i in range(max(len(old_items), len(new_items))):
            a = old_items[i] if i < len(old_items) else None
            b = new_items[i] if i < len(new_items) else None
            if _nested_requires_new(attr.elem, a, b):
                return True
    return False


def compute_diff(
    schema: Mapping[str, Attribute],
    state: Mapping[str, Value | None],
    config: Mapping[str, Value | None],
) -> InstanceDiff:
    """Compare each configurable attribute of state against config.

    Optional+computed attributes left unset in config keep their observed
    value. A changed force-new attribute marks the diff as a replacement.
    """
    result = InstanceDiff()
    for name, attr in schema.items():
        if attr.read_only:
            continue
        old = state.get(name)
        new = config.get(name)
        if new is None and attr.computed:
            continue
        if values_equal(old, new):
            continue
        requires_new = attr.force_new or _nested_requires_new(attr, old, new)
        result.attributes[name] = AttributeDiff(
            old=old,
            new=new,
            requires_new=requires_new,
            sensitive=attr.sensitive,
        )
    logger.debug("Computed diff: %s", result.changed())
    return result


class ResourceDiff:
    """View of a pending diff handed to a resource type's customize_diff hook."""

    def __init__(
        self,
        schema: Mapping[str, Attribute],
        diff: InstanceDiff,
        *,
        id: str = "",
        state: Mapping[str, Value | None] | None = None,
        config: Mapping[str, Value | None] | None = None,
    ) -> None:
        self._schema = schema
        self._diff = diff
        self._id = id
        self._state = dict(state or {})
        self._config = dict(config or {})

    @property
    def id(self) -> str:
        return self._id

    @property
    def diff(self) -> InstanceDiff:
        return self._diff

    def _attr(self, key: str) -> Attribute:
        if key not in self._schema:
            raise ValueError(f"Unknown attribute: '{key}'")
        return self._schema[key]

    def _new(self, key: str) -> Value | None:
        if key in self._diff.attributes:
            return self._diff.attributes[key].new
        return self._state.get(key)

    def get(self, key: str) -> Any:
        """Planned value of key after apply."""
        self._attr(key)
        return unwrap(self._new(key))

    def get_old(self, key: str) -> Any:
        self._attr(key)
        return unwrap(self._state.get(key))

    def get_config(self, key: str) -> Any:
        self._attr(key)
        return unwrap(self._config.get(key))

    def get_change(self, key: str) -> tuple[Any, Any]:
        return self.get_old(key), self.get(key)

    def has_change(self, key: str) -> bool:
        self._attr(key)
        return key in self._diff.attributes

    def set_new(self, key: str, value: Any) -> None:
        """Record a planned value for key, adding a change if it differs."""
        attr = self._attr(key)
        new = coerce(attr, value, key)
        old = self._state.get(key)
        if values_equal(old, new):
            self._diff.attributes.pop(key, None)
            return
        prior = self._diff.attributes.get(key)
        self._diff.attributes[key] = AttributeDiff(
            old=old,
            new=new,
            requires_new=(prior.requires_new if prior else False) or attr.force_new,
            sensitive=attr.sensitive,
        )

    def set_new_computed(self, key: str) -> None:
        """Mark key as changing to a value only known after apply."""
        attr = self._attr(key)
        self._diff.attributes[key] = AttributeDiff(
            old=self._state.get(key),
            new=None,
            sensitive=attr.sensitive,
            new_computed=True,
        )

    def force_new(self, key: str) -> None:
        """Turn a pending change of key into a replacement."""
        self._attr(key)
        change = self._diff.attributes.get(key)
        if change is None:
            raise ValueError(f"force_new: no changes for '{key}'")
        self._diff.attributes[key] = AttributeDiff(
            old=change.old,
            new=change.new,
            requires_new=True,
            sensitive=change.sensitive,
            new_computed=change.new_computed,
        )

    def clear(self, key: str) -> None:
        """Drop the pending change for key, if any."""
        self._attr(key)
        self._diff.attributes.pop(key, None)


def set_tags_diff(ctx: Context[Any], diff: ResourceDiff) -> None:
    """Plan ``tags_all`` as the provider default tags overlaid with ``tags``.

    Resource types carrying a ``tags``/``tags_all`` pair call this from their
    customize_diff hook.
    """
    config = ctx.meta.config
    planned = map_with(diff.get_config("tags") or {}, config.default_tags, config.ignore_tags)
    diff.set_new("tags_all", planned.map())
