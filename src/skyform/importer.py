"""Import support: turn an operator-supplied id into primary-key attributes."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import Context
    from .data import ResourceData

logger = logging.getLogger(__name__)

DEFAULT_SEPARATOR = "|"


class ImportHandler(ABC):
    """Populates a fresh ResourceData from an import id before the read."""

    @abstractmethod
    def __call__(self, ctx: Context[Any], d: ResourceData, id_string: str) -> None: ...


class ImportPassthrough(ImportHandler):
    """Use the import id verbatim as the instance id."""

    def __call__(self, ctx: Context[Any], d: ResourceData, id_string: str) -> None:
        d.set_id(id_string)

    def __repr__(self) -> str:
        return "ImportPassthrough()"


class Importer(ImportHandler):
    """Composite-key importer.

    The id is the primary-key values joined with ``separator`` in the order
    given by ``fields``. A JSON array of strings is accepted as input for
    values that contain the separator. Empty components are allowed only for
    fields listed in ``optional``; trailing optional components may be
    omitted entirely.
    """

    def __init__(
        self,
        *fields: str,
        optional: Iterable[str] = (),
        separator: str = DEFAULT_SEPARATOR,
    ) -> None:
        if not fields:
            raise ValueError("Importer needs at least one field")
        if not separator:
            raise ValueError("separator must not be empty")
        self.fields = tuple(fields)
        self.optional = frozenset(optional)
        unknown = self.optional - set(self.fields)
        if unknown:
            raise ValueError(f"optional fields not in key: {', '.join(sorted(unknown))}")
        self.separator = separator

    def __repr__(self) -> str:
        return f"Importer({', '.join(repr(f) for f in self.fields)}, separator={self.separator!r})"

    @property
    def expected(self) -> str:
        return self.separator.join(f.upper() for f in self.fields)

    def _split(self, id_string: str) -> list[str]:
        text = id_string.strip()
        if text.startswith("["):
            try:
                parts = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"invalid JSON import ID ({id_string}): {exc}") from exc
            if not isinstance(parts, list) or not all(isinstance(p, str) for p in parts):
                raise ValueError(f"import ID ({id_string}) must be a JSON array of strings")
            return parts
        return text.split(self.separator)

    def parse(self, id_string: str) -> dict[str, str]:
        """Split an id into ``{field: value}``, validating count and empty positions."""
        parts = self._split(id_string)
        error = ValueError(f"unexpected format of ID ({id_string}), expected {self.expected}")
        if len(parts) > len(self.fields):
            raise error
        missing = self.fields[len(parts) :]
        if any(name not in self.optional for name in missing):
            raise error
        values = dict(zip(self.fields, parts, strict=False))
        for name, value in values.items():
            if not value and name not in self.optional:
                raise error
        return {name: values.get(name, "") for name in self.fields}

    def format(self, values: Mapping[str, Any]) -> str:
        """Canonical id for values; JSON array form when a value holds the separator."""
        parts = ["" if values.get(name) is None else str(values[name]) for name in self.fields]
        for name, part in zip(self.fields, parts, strict=True):
            if not part and name not in self.optional:
                raise ValueError(f"missing value for required key field '{name}'")
        while parts and not parts[-1] and self.fields[len(parts) - 1] in self.optional:
            parts.pop()
        if any(self.separator in part for part in parts):
            return json.dumps(parts)
        return self.separator.join(parts)

    def canonical(self, id_string: str) -> str:
        return self.format(self.parse(id_string))

    def __call__(self, ctx: Context[Any], d: ResourceData, id_string: str) -> None:
        values = self.parse(id_string)
        for name, value in values.items():
            if value:
                d.set(name, value)
        canonical = self.format(values)
        logger.debug("Importing %s as %s", id_string, canonical)
        d.set_id(canonical)
