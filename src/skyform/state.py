"""Persisted instance state and the stores that hold it."""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, Field

from .datasource import DataSourceType
from .lifecycle import Instance
from .resource import ResourceType
from .values import Primitive, expand, flatten

logger = logging.getLogger(__name__)


class InstanceState(BaseModel):
    """Flat, serializable state of one instance.

    Attributes use ``a.b.0.c`` paths, with ``.#`` holding list/set counts
    and ``.%`` holding map sizes.
    """

    model_config = {"frozen": True}

    type: str
    id: str = Field(min_length=1)
    attributes: dict[str, Primitive] = Field(default_factory=dict)
    schema_version: int = 0

    @classmethod
    def from_instance(
        cls, rtype: ResourceType | DataSourceType, instance: Instance
    ) -> InstanceState:
        return cls(
            type=instance.type_name,
            id=instance.id,
            attributes=flatten(rtype.schema, instance.state),
            schema_version=rtype.schema_version,
        )

    def to_instance(self, rtype: ResourceType) -> Instance:
        """Expand into typed values, migrating from older schema versions first."""
        if self.schema_version > rtype.schema_version:
            raise ValueError(
                f"{self.type} ({self.id}): state schema version {self.schema_version} "
                f"is newer than supported version {rtype.schema_version}"
            )
        attributes = dict(self.attributes)
        if self.schema_version < rtype.schema_version:
            logger.info(
                "Migrating %s (%s) state from version %d to %d",
                self.type,
                self.id,
                self.schema_version,
                rtype.schema_version,
            )
            attributes = rtype.migrate_state(self.schema_version, attributes)
        return Instance(self.type, self.id, expand(rtype.schema, attributes))


# -- Stores --


class StateStore(ABC):
    """Keyed storage of InstanceState by (type, id)."""

    @abstractmethod
    def get(self, type_name: str, id: str) -> InstanceState | None: ...

    @abstractmethod
    def put(self, state: InstanceState) -> None: ...

    @abstractmethod
    def delete(self, type_name: str, id: str) -> None: ...

    @abstractmethod
    def list(self, type_name: str | None = None) -> list[InstanceState]: ...

    @contextmanager
    def transaction(self) -> Iterator[StateStore]:
        """Group the writes of one apply; stores may persist them on exit."""
        yield self


class MemoryStateStore(StateStore):
    """In-process store, safe to share between threads."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._states: dict[tuple[str, str], InstanceState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, type_name: str, id: str) -> InstanceState | None:
        with self._lock:
            return self._states.get((type_name, id))

    def put(self, state: InstanceState) -> None:
        with self._lock:
            self._states[(state.type, state.id)] = state

    def delete(self, type_name: str, id: str) -> None:
        with self._lock:
            self._states.pop((type_name, id), None)

    def list(self, type_name: str | None = None) -> list[InstanceState]:
        with self._lock:
            states = list(self._states.values())
        return [s for s in states if type_name is None or s.type == type_name]


class JsonStateStore(MemoryStateStore):
    """Store backed by a JSON file, written at the end of each transaction."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._depth = 0
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text())
        except json.JSONDecodeError as exc:
            raise ValueError(f"{self.path}: invalid state file: {exc}") from exc
        for item in data.get("instances", []):
            state = InstanceState.model_validate(item)
            self._states[(state.type, state.id)] = state
        logger.debug("Loaded %d instance(s) from %s", len(self._states), self.path)

    def save(self) -> None:
        with self._lock:
            instances = [s.model_dump() for _, s in sorted(self._states.items())]
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps({"version": 1, "instances": instances}, indent=2) + "\n")
        tmp.replace(self.path)
        logger.debug("Saved %d instance(s) to %s", len(instances), self.path)

    @contextmanager
    def transaction(self) -> Iterator[StateStore]:
        with self._lock:
            self._depth += 1
        try:
            yield self
        finally:
            with self._lock:
                self._depth -= 1
                outermost = self._depth == 0
            if outermost:
                self.save()
