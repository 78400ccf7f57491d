"""DataSourceType ABC for read-only lookups of existing remote objects."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from .context import Context
from .resource import Timeouts
from .schema import Attribute, validate_schema

if TYPE_CHECKING:
    from .data import ResourceData


class DataSourceType[M](ABC):
    """Base class for read-only data sources.

    A data source takes its arguments through the schema's configurable
    attributes and reports what it found through the computed ones. It has
    a single ``read`` handler and never changes anything remote.
    """

    type_name: ClassVar[str] = ""
    schema: ClassVar[dict[str, Attribute]] = {}
    schema_version: ClassVar[int] = 0
    timeouts: ClassVar[Timeouts | None] = None

    @abstractmethod
    def read(self, ctx: Context[M], d: ResourceData) -> None:
        """Look up the remote object described by the arguments and set its id.

        Lookups that match nothing raise NotFoundError, usually from a finder.
        """

    @classmethod
    def validate_definition(cls) -> list[str]:
        problems = validate_schema(cls.schema)
        if not cls.schema:
            problems.append("schema must declare at least one attribute")
        for name, attr in cls.schema.items():
            if attr.force_new:
                problems.append(f"{name}: force_new has no meaning on a data source")
        return problems
