"""Resource lifecycle engine — drive one instance toward its desired state."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sized
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .classify import is_not_found
from .context import Context
from .data import ResourceData
from .datasource import DataSourceType
from .diff import InstanceDiff, ResourceDiff, compute_diff
from .errors import NotFoundError, PartialApplyError, SchemaValidationError, SkyformError
from .resource import ResourceType, Timeouts
from .schema import Attribute, Kind
from .values import Value, coerce

logger = logging.getLogger(__name__)


class Action(StrEnum):
    NOOP = "no-op"
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"


@dataclass
class Instance:
    """One resource instance; an empty id means it does not exist."""

    type_name: str
    id: str = ""
    state: dict[str, Value | None] = field(default_factory=dict)

    @property
    def exists(self) -> bool:
        return bool(self.id)

    def __str__(self) -> str:
        return f"{self.type_name} ({self.id or '<new>'})"


@dataclass(frozen=True)
class Plan:
    action: Action
    diff: InstanceDiff
    prior: Instance
    config: dict[str, Value | None] | None = None

    def render(self) -> list[str]:
        return [f"{self.action}: {self.prior}", *(f"  {line}" for line in self.diff.render())]


# -- Validation --


def validate_config(
    schema: Mapping[str, Attribute], desired: Mapping[str, Any]
) -> dict[str, Value | None]:
    """Check desired values against schema and coerce them to typed values.

    Defaults are applied for unset optional attributes. Every problem is
    collected and raised together as a SchemaValidationError.
    """
    errors: list[str] = []
    warnings: list[str] = []
    result: dict[str, Value | None] = {}

    for name in sorted(set(desired) - set(schema)):
        errors.append(f"{name}: unsupported argument")

    for name, attr in schema.items():
        raw = desired.get(name)
        if raw is None and attr.default is not None:
            raw = attr.default
        before = len(errors)
        _check_value(attr, raw, name, errors, warnings)
        if raw is None or len(errors) > before:
            continue
        try:
            result[name] = coerce(attr, raw, name)
        except (TypeError, ValueError) as exc:
            errors.append(str(exc))

    for warning in warnings:
        logger.warning("%s", warning)
    if errors:
        raise SchemaValidationError(errors, warnings=warnings)
    return result


def _check_value(
    attr: Attribute, raw: Any, where: str, errors: list[str], warnings: list[str]
) -> None:
    if raw is None:
        if attr.required:
            errors.append(f"{where}: required attribute is not set")
        return
    if attr.read_only:
        errors.append(f"{where}: computed attribute cannot be set")
        return
    if attr.validator is not None:
        found_warnings, found_errors = attr.validator(raw, where)
        warnings.extend(found_warnings)
        errors.extend(found_errors)

    if attr.kind.is_collection and isinstance(raw, Sized) and not isinstance(raw, str):
        if attr.max_items is not None and len(raw) > attr.max_items:
            errors.append(f"{where}: at most {attr.max_items} item(s) allowed, got {len(raw)}")
        if attr.min_items is not None and len(raw) < attr.min_items:
            errors.append(f"{where}: at least {attr.min_items} item(s) required, got {len(raw)}")

    if attr.kind is Kind.OBJECT:
        if isinstance(raw, list) and len(raw) == 1:
            raw = raw[0]
        if isinstance(raw, Mapping):
            _check_block(attr.fields, raw, f"{where}.", errors, warnings)
    elif attr.elem is not None and attr.elem.kind is Kind.OBJECT and isinstance(raw, list):
        for i, item in enumerate(raw):
            if isinstance(item, Mapping):
                _check_block(attr.elem.fields, item, f"{where}.{i}.", errors, warnings)


def _check_block(
    schema: Mapping[str, Attribute],
    raw: Mapping[str, Any],
    path: str,
    errors: list[str],
    warnings: list[str],
) -> None:
    for name in sorted(set(raw) - set(schema)):
        errors.append(f"{path}{name}: unsupported argument")
    for name, attr in schema.items():
        value = raw.get(name)
        if value is None and attr.default is not None:
            value = attr.default
        _check_value(attr, value, f"{path}{name}", errors, warnings)


# -- Read --


def _timeouts(ctx: Context[Any], rtype: ResourceType | DataSourceType) -> Timeouts:
    """The type's own timeouts, else the provider-wide defaults."""
    if rtype.timeouts is not None:
        return rtype.timeouts
    return ctx.meta.config.timeouts


def _read(
    ctx: Context[Any], rtype: ResourceType, instance: Instance, *, new_resource: bool
) -> ResourceData:
    timeouts = _timeouts(ctx, rtype)
    d = ResourceData(
        rtype.schema,
        id=instance.id,
        state=instance.state,
        new_resource=new_resource,
        timeouts=timeouts,
    )
    try:
        rtype.read(ctx.with_timeout(timeouts.get("read")), d)
    except Exception as err:
        if new_resource or not is_not_found(err):
            raise
        logger.debug("Read of %s raised not found: %s", instance, err)
        d.clear()
    return d


def refresh(
    ctx: Context[Any], rtype: ResourceType, instance: Instance, *, new_resource: bool = False
) -> Instance:
    """Re-read instance from the remote.

    A missing remote object yields an instance with an empty id, unless the
    instance was just created, in which case it is an error.
    """
    if not instance.id:
        return instance
    d = _read(ctx, rtype, instance, new_resource=new_resource)
    if not d.id:
        if new_resource:
            raise NotFoundError(f"{instance} not found after creation")
        logger.warning("%s not found, removing from state", instance)
        return Instance(instance.type_name)
    return Instance(instance.type_name, d.id, d.state())


def read_data(ctx: Context[Any], dtype: DataSourceType, args: Mapping[str, Any]) -> Instance:
    """Validate args and look up the remote object a data source describes."""
    ctx.check()
    config = validate_config(dtype.schema, args)
    timeouts = _timeouts(ctx, dtype)
    d = ResourceData(dtype.schema, state=config, timeouts=timeouts)
    logger.debug("Reading data source %s", dtype.type_name)
    dtype.read(ctx.with_timeout(timeouts.get("read")), d)
    if not d.id:
        raise NotFoundError(f"{dtype.type_name}: no matching remote object found")
    return Instance(dtype.type_name, d.id, d.state())


# -- Plan --


def _diff_for(
    ctx: Context[Any], rtype: ResourceType, prior: Instance, config: dict[str, Value | None]
) -> InstanceDiff:
    diff = compute_diff(rtype.schema, prior.state, config)
    view = ResourceDiff(rtype.schema, diff, id=prior.id, state=prior.state, config=config)
    rtype.customize_diff(ctx, view)
    return diff


def plan(
    ctx: Context[Any],
    rtype: ResourceType,
    instance: Instance,
    desired: Mapping[str, Any] | None,
) -> Plan:
    """Validate desired, refresh the instance, and decide the action to take."""
    ctx.check()
    config = validate_config(rtype.schema, desired) if desired is not None else None
    prior = refresh(ctx, rtype, instance)

    if config is None:
        action = Action.DELETE if prior.exists else Action.NOOP
        return Plan(action, InstanceDiff(), prior)

    diff = _diff_for(ctx, rtype, prior if prior.exists else Instance(prior.type_name), config)
    if not prior.exists:
        action = Action.CREATE
    elif not diff:
        action = Action.NOOP
    elif diff.requires_new or not rtype.supports_update():
        action = Action.REPLACE
    else:
        action = Action.UPDATE
    return Plan(action, diff, prior, config)


# -- Apply --


def apply(
    ctx: Context[Any],
    rtype: ResourceType,
    instance: Instance,
    desired: Mapping[str, Any] | None,
) -> Instance:
    """Reconcile instance toward desired; ``None`` means the instance should not exist.

    Raises PartialApplyError when a handler fails after the remote object
    was touched, carrying the state seen by a recovery read.
    """
    p = plan(ctx, rtype, instance, desired)
    if p.action is Action.NOOP:
        logger.debug("Skipping %s; up to date", p.prior)
        return p.prior
    if ctx.dry_run:
        logger.info("[DRY RUN] Would %s %s", p.action, p.prior)
        for line in p.diff.render():
            logger.info("[DRY RUN]   %s", line)
        return p.prior

    if p.action is Action.DELETE:
        return _delete(ctx, rtype, p.prior)
    if p.action is Action.UPDATE:
        return _update(ctx, rtype, p.prior, p.diff)
    if p.action is Action.CREATE:
        return _create(ctx, rtype, p.diff)
    return _replace(ctx, rtype, p)


def _replace(ctx: Context[Any], rtype: ResourceType, p: Plan) -> Instance:
    """Delete then create; the prior id is gone even when the create fails."""
    if p.config is None:
        raise SkyformError(f"{p.prior}: replace planned without a configuration")
    logger.info("Replacing %s", p.prior)
    _delete(ctx, rtype, p.prior)
    try:
        diff = _diff_for(ctx, rtype, Instance(rtype.type_name), p.config)
        return _create(ctx, rtype, diff)
    except PartialApplyError:
        raise
    except Exception as err:
        raise PartialApplyError(Instance(rtype.type_name), err) from err


def _recover(ctx: Context[Any], rtype: ResourceType, d: ResourceData) -> Instance | None:
    """Re-read after a failed mutation so partial progress is recorded."""
    if not d.id:
        return None
    partial = Instance(rtype.type_name, d.id, d.state())
    try:
        return refresh(ctx, rtype, partial)
    except Exception as err:
        logger.warning("Recovery read of %s failed: %s", partial, err)
        return partial


def _create(ctx: Context[Any], rtype: ResourceType, diff: InstanceDiff) -> Instance:
    logger.info("Creating %s", rtype.type_name)
    timeouts = _timeouts(ctx, rtype)
    d = ResourceData(rtype.schema, diff=diff, new_resource=True, timeouts=timeouts)
    try:
        rtype.create(ctx.with_timeout(timeouts.get("create")), d)
    except Exception as err:
        partial = _recover(ctx, rtype, d)
        if partial is None:
            raise
        raise PartialApplyError(partial, err) from err
    if not d.id:
        raise SkyformError(f"{rtype.type_name}: create did not set an id")
    logger.info("Created %s (%s)", rtype.type_name, d.id)
    created = Instance(rtype.type_name, d.id, d.state())
    try:
        return refresh(ctx, rtype, created, new_resource=True)
    except Exception as err:
        raise PartialApplyError(created, err) from err


def _update(
    ctx: Context[Any], rtype: ResourceType, prior: Instance, diff: InstanceDiff
) -> Instance:
    logger.info("Updating %s: %s", prior, ", ".join(diff.changed()))
    timeouts = _timeouts(ctx, rtype)
    d = ResourceData(rtype.schema, id=prior.id, state=prior.state, diff=diff, timeouts=timeouts)
    try:
        rtype.update(ctx.with_timeout(timeouts.get("update")), d)
    except Exception as err:
        partial = _recover(ctx, rtype, d)
        if partial is None:
            raise
        raise PartialApplyError(partial, err) from err
    updated = Instance(rtype.type_name, d.id, d.state())
    try:
        return refresh(ctx, rtype, updated)
    except Exception as err:
        raise PartialApplyError(updated, err) from err


def _delete(ctx: Context[Any], rtype: ResourceType, prior: Instance) -> Instance:
    logger.info("Deleting %s", prior)
    timeouts = _timeouts(ctx, rtype)
    d = ResourceData(rtype.schema, id=prior.id, state=prior.state, timeouts=timeouts)
    try:
        rtype.delete(ctx.with_timeout(timeouts.get("delete")), d)
    except Exception as err:
        if not is_not_found(err):
            partial = _recover(ctx, rtype, d)
            if partial is None:
                raise
            raise PartialApplyError(partial, err) from err
        logger.debug("%s already deleted", prior)
    return Instance(rtype.type_name)


# -- Import --


def import_instance(ctx: Context[Any], rtype: ResourceType, id_string: str) -> list[Instance]:
    """Rehydrate an existing remote object from an operator-supplied id."""
    ctx.check()
    if rtype.importer is None:
        raise ValueError(f"Resource type '{rtype.type_name}' does not support import")
    d = ResourceData(rtype.schema, timeouts=_timeouts(ctx, rtype))
    rtype.importer(ctx, d, id_string)
    if not d.id:
        raise ValueError(f"Import of '{rtype.type_name}' did not produce an id")

    instance = Instance(rtype.type_name, d.id, d.state())
    logger.info("Importing %s", instance)
    read = _read(ctx, rtype, instance, new_resource=False)
    if not read.id:
        raise NotFoundError(f"Cannot import non-existent remote object: {instance}")
    return [Instance(rtype.type_name, read.id, read.state())]
