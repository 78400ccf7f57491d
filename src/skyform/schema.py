"""Schema entries describing the attributes of a resource type."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field, model_validator


class Kind(StrEnum):
    STRING = "string"
    INT = "int"
    BOOL = "bool"
    FLOAT = "float"
    LIST = "list"
    SET = "set"
    MAP = "map"
    OBJECT = "object"

    @property
    def is_collection(self) -> bool:
        return self in (Kind.LIST, Kind.SET, Kind.MAP)

    @property
    def is_primitive(self) -> bool:
        return self in (Kind.STRING, Kind.INT, Kind.BOOL, Kind.FLOAT)


class Attribute(BaseModel):
    """One attribute of a resource type."""

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    kind: Kind
    elem: Attribute | None = None
    fields: dict[str, Attribute] = Field(default_factory=dict)

    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    sensitive: bool = False

    default: Any = None
    validator: Callable[[Any, str], tuple[list[str], list[str]]] | None = None
    normalize: Callable[[Any], Any] | None = None
    set_hash: Callable[[Any], int] | None = None

    max_items: int | None = None
    min_items: int | None = None
    description: str = ""

    @model_validator(mode="before")
    @classmethod
    def expand_elem(cls, data: Any) -> Any:
        """Allow ``elem=Kind.STRING`` as shorthand for a primitive element."""
        if isinstance(data, dict) and isinstance(data.get("elem"), (Kind, str)):
            data = {**data, "elem": Attribute(kind=Kind(data["elem"]))}
        return data

    @model_validator(mode="after")
    def check_shape(self) -> Self:
        if self.kind.is_collection and self.elem is None:
            raise ValueError(f"{self.kind} attribute needs an elem schema")
        if self.kind is Kind.OBJECT and not self.fields:
            raise ValueError("object attribute needs fields")
        if self.set_hash is not None and self.kind is not Kind.SET:
            raise ValueError("set_hash only applies to set attributes")
        return self

    @property
    def element(self) -> Attribute:
        """Element schema of a collection attribute."""
        if self.elem is None:
            raise ValueError(f"{self.kind} attribute has no elem schema")
        return self.elem

    @property
    def read_only(self) -> bool:
        return self.computed and not self.optional and not self.required

    @property
    def configurable(self) -> bool:
        return self.required or self.optional


Attribute.model_rebuild()


def string(**kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.STRING, **kwargs)


def integer(**kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.INT, **kwargs)


def boolean(**kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.BOOL, **kwargs)


def floating(**kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.FLOAT, **kwargs)


def list_of(elem: Attribute | Kind, **kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.LIST, elem=elem, **kwargs)


def set_of(elem: Attribute | Kind, **kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.SET, elem=elem, **kwargs)


def map_of(elem: Attribute | Kind, **kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.MAP, elem=elem, **kwargs)


def nested(fields: Mapping[str, Attribute], **kwargs: Any) -> Attribute:
    return Attribute(kind=Kind.OBJECT, fields=dict(fields), **kwargs)


def tags(**kwargs: Any) -> Attribute:
    """Schema for a user-supplied tag map."""
    return map_of(Kind.STRING, optional=True, **kwargs)


def tags_computed() -> Attribute:
    """Schema for the effective tag map including provider defaults."""
    return map_of(Kind.STRING, optional=True, computed=True)


def validate_schema(schema: Mapping[str, Attribute], path: str = "") -> list[str]:
    """Return every violation of the attribute flag invariants."""
    from .values import coerce

    problems: list[str] = []
    for name, attr in schema.items():
        where = f"{path}{name}"
        if not name:
            problems.append(f"{path or 'schema'}: empty attribute name")
        flags = [attr.required, attr.optional or attr.computed]
        if sum(flags) != 1:
            problems.append(f"{where}: exactly one of required or optional/computed must be set")
        if attr.force_new and attr.computed and not attr.optional:
            problems.append(f"{where}: force_new cannot be set on a computed-only attribute")
        if attr.required and attr.default is not None:
            problems.append(f"{where}: required attributes cannot have a default")
        if attr.default is not None and attr.computed:
            problems.append(f"{where}: computed attributes cannot have a default")
        if attr.default is not None:
            try:
                coerce(attr, attr.default, where)
            except (TypeError, ValueError) as exc:
                problems.append(f"{where}: invalid default: {exc}")
        if attr.kind is Kind.OBJECT:
            problems.extend(validate_schema(attr.fields, f"{where}."))
        if attr.elem is not None and attr.elem.kind is Kind.OBJECT:
            problems.extend(validate_schema(attr.elem.fields, f"{where}.*."))
    return problems
