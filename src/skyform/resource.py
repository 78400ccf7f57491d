"""ResourceType ABC, per-operation timeouts, and resource type registration."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, Field

from .context import Context
from .schema import Attribute, validate_schema

if TYPE_CHECKING:
    from .data import ResourceData
    from .datasource import DataSourceType
    from .diff import ResourceDiff
    from .importer import ImportHandler
    from .values import Primitive

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20 * 60.0

OPERATIONS = ("create", "read", "update", "delete")


class Timeouts(BaseModel):
    """Per-operation timeouts in seconds; unset operations use ``default``."""

    model_config = {"frozen": True}

    create: float | None = Field(default=None, gt=0)
    read: float | None = Field(default=None, gt=0)
    update: float | None = Field(default=None, gt=0)
    delete: float | None = Field(default=None, gt=0)
    default: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    def get(self, op: str) -> float:
        if op not in OPERATIONS:
            raise ValueError(f"Unknown operation: '{op}'")
        value = getattr(self, op)
        return value if value is not None else self.default


# -- ResourceType ABC --


class ResourceType[M](ABC):
    """Base class for all managed resource types.

    Subclasses declare ``schema`` and implement the lifecycle handlers. The
    handlers talk to the cloud through ``ctx.meta`` and report what they
    observe through the ResourceData.
    """

    type_name: ClassVar[str] = ""
    schema: ClassVar[dict[str, Attribute]] = {}
    schema_version: ClassVar[int] = 0
    timeouts: ClassVar[Timeouts | None] = None
    importer: ClassVar[ImportHandler | None] = None

    @abstractmethod
    def create(self, ctx: Context[M], d: ResourceData) -> None:
        """Create the remote object and set its id."""

    @abstractmethod
    def read(self, ctx: Context[M], d: ResourceData) -> None:
        """Refresh state from the remote; clear the id when it is gone."""

    def update(self, ctx: Context[M], d: ResourceData) -> None:
        """Apply in-place changes."""
        name = self.type_name or type(self).__name__
        raise NotImplementedError(f"{name} does not support updates")

    @abstractmethod
    def delete(self, ctx: Context[M], d: ResourceData) -> None:
        """Delete the remote object."""

    def customize_diff(self, ctx: Context[M], diff: ResourceDiff) -> None:
        """Adjust the planned diff after the base comparison."""

    def migrate_state(self, version: int, attributes: dict[str, Primitive]) -> dict[str, Primitive]:
        """Upgrade persisted attributes from an older schema version."""
        return attributes

    @classmethod
    def supports_update(cls) -> bool:
        return cls.update is not ResourceType.update

    @classmethod
    def validate_definition(cls) -> list[str]:
        """Return every problem with this type's schema and handlers."""
        problems = validate_schema(cls.schema)
        if not cls.schema:
            problems.append("schema must declare at least one attribute")
        if not cls.supports_update():
            mutable = [
                name
                for name, attr in cls.schema.items()
                if attr.configurable and not attr.force_new
            ]
            if mutable:
                problems.append(
                    f"update is required unless all configurable attributes are force_new: "
                    f"{', '.join(sorted(mutable))}"
                )
        return problems


# -- Registry --


class Registry(Mapping[str, type[ResourceType]]):
    """Maps resource type names to ResourceType classes.

    Read-only data sources live in their own namespace alongside. Registration
    is validated eagerly. The registry is frozen on the first apply, after
    which it can no longer change.
    """

    def __init__(self) -> None:
        self._types: dict[str, type[ResourceType]] = {}
        self._data_sources: dict[str, type[DataSourceType]] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        if not self._frozen:
            logger.debug(
                "Freezing registry with %d resource type(s) and %d data source(s)",
                len(self._types),
                len(self._data_sources),
            )
        self._frozen = True

    def register(self, name: str, cls: type[ResourceType]) -> None:
        if self._frozen:
            raise ValueError(f"Cannot register '{name}': registry is frozen")
        if name in self._types:
            raise ValueError(f"Duplicate resource type: '{name}'")
        problems = cls.validate_definition()
        if problems:
            raise ValueError(f"Invalid resource type '{name}': {'; '.join(problems)}")
        cls.type_name = name
        logger.debug("Registered resource type '%s' -> %s", name, cls.__name__)
        self._types[name] = cls

    def lookup(self, name: str) -> type[ResourceType]:
        """Return the type registered as name; unknown names raise ValueError."""
        if name not in self._types:
            raise ValueError(f"Unknown resource type: '{name}'")
        return self._types[name]

    def register_data_source(self, name: str, cls: type[DataSourceType]) -> None:
        if self._frozen:
            raise ValueError(f"Cannot register data source '{name}': registry is frozen")
        if name in self._data_sources:
            raise ValueError(f"Duplicate data source: '{name}'")
        problems = cls.validate_definition()
        if problems:
            raise ValueError(f"Invalid data source '{name}': {'; '.join(problems)}")
        cls.type_name = name
        logger.debug("Registered data source '%s' -> %s", name, cls.__name__)
        self._data_sources[name] = cls

    def lookup_data_source(self, name: str) -> type[DataSourceType]:
        if name not in self._data_sources:
            raise ValueError(f"Unknown data source: '{name}'")
        return self._data_sources[name]

    def data_sources(self) -> list[str]:
        return list(self._data_sources)

    def __getitem__(self, name: str) -> type[ResourceType]:
        return self._types[name]

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"Registry(types={len(self._types)}, frozen={self._frozen})"


_registry = Registry()


def default_registry() -> Registry:
    return _registry


def register_resource_type(name: str, *, registry: Registry | None = None):
    """Register a ResourceType class under a type name."""

    def decorator(cls):
        (registry if registry is not None else _registry).register(name, cls)
        return cls

    return decorator


def register_data_source(name: str, *, registry: Registry | None = None):
    """Register a DataSourceType class under a data source name."""

    def decorator(cls):
        (registry if registry is not None else _registry).register_data_source(name, cls)
        return cls

    return decorator
