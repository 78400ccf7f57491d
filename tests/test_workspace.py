"""Tests for skyform.workspace."""

from __future__ import annotations

from pathlib import Path

import pytest

from skyform.workspace import ResourceRef, Workspace


def _write_hcl(tmp_path: Path, filename: str, content: str) -> Path:
    f = tmp_path / filename
    f.write_text(content)
    return f


def _resource(type_name: str, name: str, /, **attrs) -> dict:
    return {"resource": [{type_name: {name: attrs}}]}


class TestWorkspaceConstruction:
    def test_empty_workspace_len(self):
        assert len(Workspace()) == 0

    def test_empty_workspace_iter(self):
        assert list(Workspace()) == []

    def test_empty_workspace_contains(self):
        assert "widget.a" not in Workspace()

    def test_getitem_empty_raises(self):
        with pytest.raises(KeyError):
            Workspace()["widget.a"]

    def test_get_empty_returns_none(self):
        assert Workspace().get("widget.a") is None

    def test_repr_empty(self):
        assert repr(Workspace()) == "Workspace(provider=False, resources=0)"


class TestLoad:
    def test_resources_keyed_by_address(self):
        ws = Workspace()
        ws.load(_resource("widget", "a", name="alpha"))
        ref = ws["widget.a"]
        assert isinstance(ref, ResourceRef)
        assert ref.type_name == "widget"
        assert ref.name == "a"
        assert ref.attrs == {"name": "alpha"}

    def test_declaration_order_kept(self):
        ws = Workspace()
        ws.load(
            {
                "resource": [
                    {"widget": {"b": {"name": "b"}}},
                    {"widget": {"a": {"name": "a"}}, "gadget": {"c": {"name": "c"}}},
                ]
            }
        )
        assert list(ws) == ["widget.b", "widget.a", "gadget.c"]

    def test_duplicate_resource(self):
        ws = Workspace()
        ws.load(_resource("widget", "a", name="alpha"))
        with pytest.raises(ValueError, match="Duplicate resource: 'widget.a'"):
            ws.load(_resource("widget", "a", name="again"))

    def test_duplicate_provider(self):
        ws = Workspace()
        ws.load({"provider": [{"region": "r1"}]})
        with pytest.raises(ValueError, match="Duplicate provider block"):
            ws.load({"provider": [{"region": "r2"}]})

    def test_filter_preserves_input_order(self):
        ws = Workspace()
        ws.load({"resource": [{"widget": {"a": {}, "b": {}}}]})
        assert [r.name for r in ws.filter(["widget.b", "widget.x", "widget.a"])] == ["b", "a"]

    def test_repr(self):
        ws = Workspace()
        ws.load({"provider": [{}], **_resource("widget", "a")})
        assert repr(ws) == "Workspace(provider=True, resources=1)"


class TestProviderConfig:
    def test_defaults_without_block(self):
        assert Workspace().provider_config().region == ""

    def test_from_hcl(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SKYFORM_REGION", "eu-test-2")
        _write_hcl(
            tmp_path,
            "provider.hcl",
            """
            provider {
                region = "${env.SKYFORM_REGION}"
                default_tags {
                    tags = { env = "prod" }
                }
                ignore_tags {
                    key_prefixes = ["sys:"]
                }
            }
        """,
        )
        ws = Workspace()
        ws.scan(tmp_path)
        config = ws.provider_config()
        assert config.region == "eu-test-2"
        assert config.default_tags.tags == {"env": "prod"}
        assert config.ignore_tags.key_prefixes == ["sys:"]


class TestApply:
    def test_applies_each_resource(self, tmp_path, provider, cloud, monkeypatch):
        monkeypatch.setenv("SKYFORM_SIZE_NAME", "big")
        _write_hcl(
            tmp_path,
            "main.hcl",
            """
            resource "widget" "a" {
                name = "alpha"
                size = 2
            }

            resource "widget" "b" {
                name = "${env.SKYFORM_SIZE_NAME}"
                tags = { team = "core" }
            }
        """,
        )
        ws = Workspace()
        ws.scan(tmp_path)
        results = ws.apply(provider)
        assert list(results) == ["widget.a", "widget.b"]
        assert results["widget.a"].id == "r-1"
        assert cloud.widgets["r-1"]["size"] == 2
        assert cloud.widgets["r-2"]["name"] == "big"
        assert cloud.widgets["r-2"]["tags"] == {"team": "core"}

    def test_existing_ids_are_reconciled(self, provider, cloud):
        ws = Workspace()
        ws.load(_resource("widget", "a", name="alpha", size=1))
        first = ws.apply(provider)
        ws2 = Workspace()
        ws2.load(_resource("widget", "a", name="alpha", size=3))
        second = ws2.apply(provider, ids={"widget.a": first["widget.a"].id})
        assert second["widget.a"].id == "r-1"
        assert cloud.calls == [("create", "r-1"), ("update", "r-1")]
