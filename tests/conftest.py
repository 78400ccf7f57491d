"""Shared fixtures: a fake clock, an in-memory fake cloud, and a sample resource type."""

from __future__ import annotations

import threading
from typing import Any

import pytest

from skyform.classify import is_code
from skyform.clock import Clock
from skyform.config import ProviderConfig, ProviderMeta
from skyform.context import Context
from skyform.data import ResourceData
from skyform.diff import ResourceDiff, set_tags_diff
from skyform.errors import CloudError, NotFoundError, OperationError
from skyform.finder import find
from skyform.importer import ImportPassthrough
from skyform.provider import Provider
from skyform.resource import Registry, ResourceType
from skyform.schema import integer, string, tags, tags_computed
from skyform.tags import KeyValueTags, update_tags

NOT_FOUND_CODE = "ResourceNotFoundException"


class FakeClock(Clock):
    """Clock whose sleeps advance time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        if cancel is not None and cancel.is_set():
            return True
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)
        return False


class FakeCloud:
    """In-memory widget service recording every mutating call."""

    def __init__(self) -> None:
        self.widgets: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, BaseException] = {}
        self._seq = 0

    def _maybe_fail(self, op: str) -> None:
        err = self.failures.pop(op, None)
        if err is not None:
            raise err

    def create_widget(self, name: str, size: int, tags: dict[str, str]) -> str:
        self._maybe_fail("create")
        self._seq += 1
        widget_id = f"r-{self._seq}"
        self.widgets[widget_id] = {"name": name, "size": size, "tags": dict(tags)}
        self.calls.append(("create", widget_id))
        return widget_id

    def describe_widget(self, widget_id: str) -> dict[str, Any]:
        self._maybe_fail("describe")
        if widget_id not in self.widgets:
            raise CloudError(NOT_FOUND_CODE, f"widget {widget_id} does not exist")
        widget = self.widgets[widget_id]
        return {**widget, "tags": dict(widget["tags"])}

    def list_widgets(self, filters: list[dict[str, Any]] | None = None) -> list[dict[str, Any]]:
        self._maybe_fail("list")
        found = []
        for widget_id, widget in sorted(self.widgets.items()):
            fields = {"name": widget["name"], **{f"tag:{k}": v for k, v in widget["tags"].items()}}
            if all(fields.get(f["Name"]) in f["Values"] for f in filters or []):
                found.append({"id": widget_id, **widget})
        return found

    def update_widget(self, widget_id: str, size: int) -> None:
        self._maybe_fail("update")
        self.describe_widget(widget_id)
        self.widgets[widget_id]["size"] = size
        self.calls.append(("update", widget_id))

    def delete_widget(self, widget_id: str) -> None:
        self._maybe_fail("delete")
        self.describe_widget(widget_id)
        del self.widgets[widget_id]
        self.calls.append(("delete", widget_id))

    def tag_resource(self, widget_id: str, new_tags: KeyValueTags) -> None:
        self.widgets[widget_id]["tags"].update(new_tags.map())
        self.calls.append(("tag", widget_id))

    def untag_resource(self, widget_id: str, keys: list[str]) -> None:
        for key in keys:
            self.widgets[widget_id]["tags"].pop(key, None)
        self.calls.append(("untag", widget_id))


def find_widget(cloud: FakeCloud, widget_id: str) -> dict[str, Any]:
    return find(cloud.describe_widget, widget_id, not_found_codes=[NOT_FOUND_CODE])


class Widget(ResourceType[ProviderMeta]):
    schema = {
        "name": string(required=True, force_new=True),
        "size": integer(optional=True, default=1),
        "tags": tags(),
        "tags_all": tags_computed(),
        "arn": string(computed=True),
    }
    importer = ImportPassthrough()

    def create(self, ctx: Context[ProviderMeta], d: ResourceData) -> None:
        cloud = ctx.meta.client("widgets")
        try:
            widget_id = cloud.create_widget(d.get("name"), d.get("size"), d.get("tags_all") or {})
        except CloudError as err:
            raise OperationError("creating", "Widget", d.get("name"), err) from err
        d.set_id(widget_id)

    def read(self, ctx: Context[ProviderMeta], d: ResourceData) -> None:
        config = ctx.meta.config
        try:
            widget = find_widget(ctx.meta.client("widgets"), d.id)
        except NotFoundError:
            if d.is_new_resource():
                raise
            d.clear()
            return
        remote = KeyValueTags(widget["tags"]).ignore_system(config.system_tag_prefixes)
        remote = remote.ignore_config(config.ignore_tags)
        d.set("name", widget["name"])
        d.set("size", widget["size"])
        d.set("tags", remote.remove_defaults(config.default_tags).map())
        d.set("tags_all", remote.map())
        d.set("arn", f"arn:fake:widget/{d.id}")

    def update(self, ctx: Context[ProviderMeta], d: ResourceData) -> None:
        cloud = ctx.meta.client("widgets")
        if d.has_change("size"):
            cloud.update_widget(d.id, d.get("size"))
        if d.has_change("tags_all"):
            old, new = d.get_change("tags_all")
            update_tags(
                d.id,
                old,
                new,
                tag=cloud.tag_resource,
                untag=cloud.untag_resource,
                ignore=ctx.meta.config.ignore_tags,
            )

    def delete(self, ctx: Context[ProviderMeta], d: ResourceData) -> None:
        try:
            ctx.meta.client("widgets").delete_widget(d.id)
        except CloudError as err:
            if is_code(err, NOT_FOUND_CODE):
                raise NotFoundError(last_error=err) from err
            raise

    def customize_diff(self, ctx: Context[ProviderMeta], diff: ResourceDiff) -> None:
        set_tags_diff(ctx, diff)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cloud() -> FakeCloud:
    return FakeCloud()


@pytest.fixture
def config() -> ProviderConfig:
    return ProviderConfig(region="us-test-1")


@pytest.fixture
def meta(cloud, config) -> ProviderMeta:
    return ProviderMeta(config=config, clients={"widgets": cloud})


@pytest.fixture
def registry() -> Registry:
    reg = Registry()
    reg.register("widget", Widget)
    return reg


@pytest.fixture
def provider(meta, registry, clock) -> Provider:
    return Provider(meta, registry=registry, clock=clock)


@pytest.fixture
def ctx(meta, clock) -> Context[ProviderMeta]:
    return Context(meta, clock=clock)
