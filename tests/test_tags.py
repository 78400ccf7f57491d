"""Tests for skyform.tags."""

from __future__ import annotations

import pytest

from skyform.tags import (
    DefaultTagsConfig,
    IgnoreTagsConfig,
    KeyValueTags,
    diff,
    map_with,
    marshal,
    new,
    unmarshal,
    update_tags,
)


class TestIgnoredTagsDiff:
    def test_ignored_prefix_is_left_alone(self):
        old = {"foo": "1", "sys:x": "x"}
        changes = diff(old, {"foo": "2"}, IgnoreTagsConfig(key_prefixes=["sys"]))
        assert changes.to_remove == {}
        assert changes.to_add == {}
        assert changes.to_update == {"foo": "2"}

    def test_ignored_tag_survives_on_remote(self):
        remote = {"foo": "1", "sys:x": "x"}

        def tag(identifier, tags):
            remote.update(tags.map())

        def untag(identifier, keys):
            for key in keys:
                remote.pop(key)

        update_tags(
            "w-1",
            dict(remote),
            {"foo": "2"},
            tag=tag,
            untag=untag,
            ignore=IgnoreTagsConfig(key_prefixes=["sys"]),
        )
        assert remote == {"foo": "2", "sys:x": "x"}


class TestDiff:
    def test_add_remove_update(self):
        changes = diff({"a": "1", "b": "2"}, {"b": "3", "c": "4"})
        assert changes.to_remove == {"a": "1"}
        assert changes.to_add == {"c": "4"}
        assert changes.to_update == {"b": "3"}
        assert changes

    def test_no_changes(self):
        assert not diff({"a": "1"}, {"a": "1"})

    def test_apply_reaches_new(self):
        old = {"a": "1", "b": "2"}
        target = {"b": "3", "c": "4"}
        assert diff(old, target).apply(old) == target

    def test_update_tags_calls(self):
        calls = []
        update_tags(
            "w-1",
            {"a": "1", "b": "2", "aws:created": "x"},
            {"b": "3", "c": "4"},
            tag=lambda i, t: calls.append(("tag", i, t.map())),
            untag=lambda i, keys: calls.append(("untag", i, keys)),
        )
        assert calls == [("untag", "w-1", ["a"]), ("tag", "w-1", {"b": "3", "c": "4"})]

    def test_update_tags_without_changes_makes_no_calls(self):
        calls = []
        update_tags("w-1", {"a": "1"}, {"a": "1"}, tag=calls.append, untag=calls.append)
        assert calls == []

    @pytest.mark.parametrize(
        ("old", "extra"),
        [
            ({}, {"x": "1"}),
            ({"x": "1"}, {}),
            ({"x": "1", "y": "2"}, {"y": "3", "z": "4"}),
            ({"x": "1", "y": "2"}, {"x": "1", "y": "2"}),
        ],
    )
    def test_diff_against_merge(self, old, extra):
        changes = diff(old, KeyValueTags(old).merge(extra))
        assert changes.to_remove == {}
        assert changes.to_add == {k: v for k, v in extra.items() if k not in old}
        assert changes.to_update == {k: v for k, v in extra.items() if k in old and old[k] != v}


class TestKeyValueTags:
    def test_inputs_not_mutated(self):
        source = {"a": "1"}
        tags = KeyValueTags(source)
        tags.merge({"b": "2"})
        tags.ignore(["a"])
        assert source == {"a": "1"}
        assert tags == {"a": "1"}

    @pytest.mark.parametrize(
        "data",
        [
            {"a": "1", "b": ""},
            [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": None}],
            [{"key": "a", "value": "1"}, {"key": "b"}],
            [("a", "1"), ("b", "")],
        ],
    )
    def test_constructors(self, data):
        assert new(data) == {"a": "1", "b": ""}

    def test_list_of_keys(self):
        assert new(["a", "b"]) == {"a": "", "b": ""}

    def test_string_rejected(self):
        with pytest.raises(TypeError):
            new("a=1")

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            new({"": "1"})

    def test_merge_right_bias(self):
        assert new({"a": "1", "b": "1"}).merge({"b": "2"}) == {"a": "1", "b": "2"}

    def test_ignore_system(self):
        tags = new({"aws:cloudformation:stack": "s", "name": "n"})
        assert tags.ignore_system() == {"name": "n"}

    def test_ignore_config(self):
        config = IgnoreTagsConfig(keys=["owner"], key_prefixes=["tmp:"])
        tags = new({"owner": "o", "tmp:x": "1", "keep": "k"})
        assert tags.ignore_config(config) == {"keep": "k"}
        assert config.is_ignored("tmp:y")
        assert not config.is_ignored("keep")

    def test_remove_defaults_only_matching_values(self):
        defaults = DefaultTagsConfig(tags={"env": "prod", "team": "core"})
        tags = new({"env": "prod", "team": "edge", "name": "n"})
        assert tags.remove_defaults(defaults) == {"team": "edge", "name": "n"}

    def test_map_with(self):
        defaults = DefaultTagsConfig(tags={"env": "prod", "team": "core"})
        ignore = IgnoreTagsConfig(keys=["skip"])
        merged = map_with({"team": "edge", "skip": "1"}, defaults, ignore)
        assert merged == {"env": "prod", "team": "edge"}

    def test_chunks(self):
        tags = new({f"k{i}": str(i) for i in range(5)})
        chunks = tags.chunks(2)
        assert [len(c) for c in chunks] == [2, 2, 1]
        merged = KeyValueTags()
        for chunk in chunks:
            merged = merged.merge(chunk)
        assert merged == tags

    def test_url_encode(self):
        assert new({"b": "x y", "a": "1"}).url_encode() == "a=1&b=x+y"

    def test_hashable(self):
        assert hash(new({"a": "1"})) == hash(new([("a", "1")]))


class TestMarshallers:
    def test_key_value_list(self):
        native = marshal({"b": "2", "a": "1"}, "key_value_list")
        assert native == [{"Key": "a", "Value": "1"}, {"Key": "b", "Value": "2"}]
        assert unmarshal("key_value_list", native) == {"a": "1", "b": "2"}

    def test_key_value_lower(self):
        assert marshal({"a": "1"}, "key_value_lower") == [{"key": "a", "value": "1"}]

    def test_map(self):
        assert marshal(new({"a": "1"}), "map") == {"a": "1"}

    def test_query_string(self):
        assert unmarshal("query_string", marshal({"a": "1", "b": ""}, "query_string")) == {
            "a": "1",
            "b": "",
        }

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unknown tag format"):
            marshal({}, "xml")
