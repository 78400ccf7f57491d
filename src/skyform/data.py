"""The view of one instance handed to lifecycle handlers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .diff import InstanceDiff
from .schema import Attribute
from .values import ListValue, MapValue, ObjectValue, SetValue, Value, coerce, unwrap

if TYPE_CHECKING:
    from .resource import Timeouts


class ResourceData:
    """Planned attribute values plus the writes a handler makes.

    ``get`` returns the planned value: the diff's new value for changed
    attributes, otherwise the observed state. ``set`` records what the
    handler observed remotely; those writes form the resulting state.
    """

    def __init__(
        self,
        schema: Mapping[str, Attribute],
        *,
        id: str = "",
        state: Mapping[str, Value | None] | None = None,
        diff: InstanceDiff | None = None,
        new_resource: bool = False,
        timeouts: Timeouts | None = None,
    ) -> None:
        self._schema = schema
        self._id = id
        self._state = dict(state or {})
        self._diff = diff if diff is not None else InstanceDiff()
        self._writes: dict[str, Value | None] = {}
        self._new_resource = new_resource
        self._timeouts = timeouts

    def __repr__(self) -> str:
        return f"ResourceData(id={self._id!r}, new_resource={self._new_resource})"

    # -- Identity --

    @property
    def id(self) -> str:
        return self._id

    def set_id(self, id: str) -> None:
        """Set the remote id; an empty id marks the instance as absent."""
        self._id = id

    def clear(self) -> None:
        self._id = ""

    def is_new_resource(self) -> bool:
        return self._new_resource

    def mark_new_resource(self) -> None:
        self._new_resource = True

    def timeout(self, op: str) -> float:
        if self._timeouts is None:
            from .resource import Timeouts

            return Timeouts().get(op)
        return self._timeouts.get(op)

    # -- Values --

    def _attr(self, key: str) -> Attribute:
        if key not in self._schema:
            raise ValueError(f"Unknown attribute: '{key}'")
        return self._schema[key]

    def _planned(self, key: str) -> Value | None:
        if key in self._writes:
            return self._writes[key]
        change = self._diff.attributes.get(key)
        if change is not None and not change.new_computed:
            return change.new
        return self._state.get(key)

    def get(self, key: str) -> Any:
        """Planned value at key, a dotted path such as ``rule.0.port``."""
        name, _, rest = key.partition(".")
        self._attr(name)
        value = self._planned(name)
        for segment in rest.split(".") if rest else ():
            value = _child(value, segment)
        return unwrap(value)

    def get_ok(self, key: str) -> tuple[Any, bool]:
        """Planned value and whether it is set to a non-empty value."""
        value = self.get(key)
        return value, value is not None and value != "" and not (
            isinstance(value, (list, dict)) and not value
        )

    def set(self, key: str, value: Any) -> None:
        """Record the remote value of a top-level attribute."""
        attr = self._attr(key)
        self._writes[key] = coerce(attr, value, key)

    def has_change(self, key: str) -> bool:
        self._attr(key)
        return key in self._diff.attributes

    def has_changes(self, *keys: str) -> bool:
        return any(self.has_change(k) for k in keys)

    def has_changes_except(self, *keys: str) -> bool:
        skip = set(keys)
        return any(k not in skip for k in self._diff.attributes)

    def get_change(self, key: str) -> tuple[Any, Any]:
        """(old, new) for key, where old is the prior observed value."""
        self._attr(key)
        return unwrap(self._state.get(key)), self.get(key)

    def state(self) -> dict[str, Value | None]:
        """The resulting state: planned values overlaid with handler writes."""
        result: dict[str, Value | None] = {}
        for name in self._schema:
            value = self._planned(name)
            if value is not None:
                result[name] = value
        return result


def _child(value: Value | None, segment: str) -> Value | None:
    if value is None:
        return None
    if isinstance(value, ListValue):
        index = int(segment)
        return value.items[index] if 0 <= index < len(value.items) else None
    if isinstance(value, SetValue):
        index = int(segment)
        return value.items[index][1] if 0 <= index < len(value.items) else None
    if isinstance(value, (MapValue, ObjectValue)):
        return value.get(segment)
    raise ValueError(f"cannot index {value.kind} value with '{segment}'")
