"""Tests for the config format adapters and ConfigService."""

import json
import stat

import pytest

from ccman.adapters import (
    EnvAdapter,
    JsonAdapter,
    MergeMode,
    TomlAdapter,
    deep_merge,
    parse_env,
    serialize_env,
)
from ccman.errors import ConfigPathNotFound, ParseError, ValidationFailed
from ccman.tools import ConfigService


class TestDeepMerge:
    def test_old_override_new_keeps_existing_values(self):
        existing = {"a": 1, "b": 2}
        template = {"b": 3, "c": 4}
        assert deep_merge(existing, template, MergeMode.OLD_OVERRIDE_NEW) == {"a": 1, "b": 2, "c": 4}

    def test_new_override_old_takes_new_values(self):
        existing = {"a": 1, "b": 2}
        template = {"b": 3, "c": 4}
        assert deep_merge(existing, template, MergeMode.NEW_OVERRIDE_OLD) == {"a": 1, "b": 3, "c": 4}

    def test_mode_accepts_string_value(self):
        assert deep_merge({"a": 1}, {"a": 2}, "new-override-old") == {"a": 2}

    def test_nested_objects_merge_key_by_key(self):
        existing = {"env": {"TOKEN": "old", "CUSTOM": "mine"}}
        template = {"env": {"TOKEN": "new", "EXTRA": "x"}}

        assert deep_merge(existing, template, MergeMode.OLD_OVERRIDE_NEW) == {
            "env": {"TOKEN": "old", "CUSTOM": "mine", "EXTRA": "x"}
        }
        assert deep_merge(existing, template, MergeMode.NEW_OVERRIDE_OLD) == {
            "env": {"TOKEN": "new", "CUSTOM": "mine", "EXTRA": "x"}
        }

    def test_arrays_are_replaced_wholesale(self):
        existing = {"allow": ["a", "b"]}
        template = {"allow": ["c"]}
        assert deep_merge(existing, template, MergeMode.NEW_OVERRIDE_OLD) == {"allow": ["c"]}
        assert deep_merge(existing, template, MergeMode.OLD_OVERRIDE_NEW) == {"allow": ["a", "b"]}

    def test_none_removes_key_only_when_new_wins(self):
        existing = {"a": 1, "b": 2}
        assert deep_merge(existing, {"b": None}, MergeMode.NEW_OVERRIDE_OLD) == {"a": 1}
        assert deep_merge(existing, {"b": None}, MergeMode.OLD_OVERRIDE_NEW) == {"a": 1, "b": 2}
        assert deep_merge(existing, {"c": None}, MergeMode.NEW_OVERRIDE_OLD) == {"a": 1, "b": 2}

    def test_none_inside_new_nested_object_is_dropped(self):
        merged = deep_merge({}, {"servers": {"gone": None, "kept": {"x": 1}}}, MergeMode.NEW_OVERRIDE_OLD)
        assert merged == {"servers": {"kept": {"x": 1}}}

    def test_inputs_are_not_mutated(self):
        existing = {"env": {"A": "1"}}
        template = {"env": {"B": "2"}}
        deep_merge(existing, template, MergeMode.NEW_OVERRIDE_OLD)
        assert existing == {"env": {"A": "1"}}
        assert template == {"env": {"B": "2"}}

    def test_existing_key_order_is_kept(self):
        merged = deep_merge({"z": 1, "a": 2}, {"m": 3, "z": 4}, MergeMode.NEW_OVERRIDE_OLD)
        assert list(merged) == ["z", "a", "m"]


class TestEnvAdapter:
    def test_parse_skips_blank_lines_and_comments(self):
        text = "# comment\n\nFOO=1\n  # indented comment\nBAR = two words \n"
        assert parse_env(text) == {"FOO": "1", "BAR": "two words"}

    def test_parse_last_key_wins(self):
        assert parse_env("FOO=1\nFOO=2\n") == {"FOO": "2"}

    def test_parse_keeps_equals_in_value(self):
        assert parse_env("URL=https://x/?a=b\n") == {"URL": "https://x/?a=b"}

    def test_parse_skips_malformed_lines(self):
        assert parse_env("FOO=1\nexport\n=orphan\nBAR=2\n") == {"FOO": "1", "BAR": "2"}

    def test_read_file_with_malformed_lines(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("GEMINI_API_KEY=k\nnot a pair\n", encoding="utf-8")
        assert EnvAdapter().read(path) == {"GEMINI_API_KEY": "k"}

    def test_serialize_sorts_keys(self):
        assert serialize_env({"b": "2", "a": "1"}) == "a=1\nb=2\n"

    def test_serialize_empty(self):
        assert serialize_env({}) == ""

    def test_write_removes_and_sets_keys(self, tmp_path):
        path = tmp_path / ".env"
        path.write_text("FOO=1\nBAR=2\n", encoding="utf-8")

        EnvAdapter().write(path, {"BAR": None, "BAZ": "3"}, MergeMode.NEW_OVERRIDE_OLD)

        content = path.read_text(encoding="utf-8")
        assert content == "BAZ=3\nFOO=1\n"
        assert "BAR" not in EnvAdapter().read(path)

    def test_validate_requires_string_values(self):
        with pytest.raises(ValidationFailed):
            EnvAdapter().validate({"PORT": 8080})

    def test_write_rejects_non_string_value(self, tmp_path):
        path = tmp_path / ".env"
        with pytest.raises(ValidationFailed):
            EnvAdapter().write(path, {"PORT": 8080}, MergeMode.NEW_OVERRIDE_OLD)
        assert not path.exists()


class TestJsonAdapter:
    def test_read_missing_file_returns_empty(self, tmp_path):
        assert JsonAdapter().read(tmp_path / "missing.json") == {}

    def test_read_invalid_json_raises_parse_error(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ParseError):
            JsonAdapter().read(path)

    def test_read_non_object_raises_parse_error(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ParseError):
            JsonAdapter().read(path)

    def test_read_invalid_utf8_raises_parse_error(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"a": "\xff"}')
        with pytest.raises(ParseError, match="latin1.json"):
            JsonAdapter().read(path)

    def test_write_over_invalid_utf8_raises_parse_error(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"a": "\xff"}')
        with pytest.raises(ParseError, match="latin1.json"):
            JsonAdapter().write(path, {"b": 1})
        assert path.read_bytes() == b'{"a": "\xff"}'

    def test_write_over_invalid_json_names_the_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ParseError, match="settings.json"):
            JsonAdapter().write(path, {"b": 1})

    def test_validate_rejects_non_object(self):
        with pytest.raises(ValidationFailed):
            JsonAdapter().validate(["a"])

    def test_write_creates_parent_with_owner_only_permissions(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "settings.json"
        JsonAdapter().write(path, {"a": 1})

        assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1}
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_write_preserves_user_values_by_default(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"theme": "dark", "env": {"A": "user"}}), encoding="utf-8")

        JsonAdapter().write(path, {"env": {"A": "template", "B": "template"}})

        assert JsonAdapter().read(path) == {"theme": "dark", "env": {"A": "user", "B": "template"}}

    def test_update_applies_layers_in_order(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"env": {"TOKEN": "old"}}), encoding="utf-8")

        JsonAdapter().update(path, [
            ({"env": {"TOKEN": "template", "X": "1"}}, MergeMode.OLD_OVERRIDE_NEW),
            ({"env": {"TOKEN": "forced"}}, MergeMode.NEW_OVERRIDE_OLD),
        ])

        assert JsonAdapter().read(path) == {"env": {"TOKEN": "forced", "X": "1"}}

    def test_write_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "settings.json"
        JsonAdapter().write(path, {"a": 1})
        assert sorted(p.name for p in tmp_path.iterdir()) == ["settings.json"]


class TestTomlAdapter:
    def test_read_invalid_toml_raises_parse_error(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("model = \n[broken", encoding="utf-8")
        with pytest.raises(ParseError):
            TomlAdapter().read(path)

    def test_write_preserves_comments_and_untouched_keys(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            "# my codex config\n"
            "model = \"o3\"  # keep me\n"
            "approval_policy = \"never\"\n"
            "\n"
            "[model_providers.old]\n"
            "name = \"old\"\n",
            encoding="utf-8",
        )

        TomlAdapter().write(path, {"model_provider": "new"}, MergeMode.NEW_OVERRIDE_OLD)

        content = path.read_text(encoding="utf-8")
        assert "# my codex config" in content
        assert "# keep me" in content
        data = TomlAdapter().read(path)
        assert data["model"] == "o3"
        assert data["approval_policy"] == "never"
        assert data["model_provider"] == "new"
        assert data["model_providers"]["old"]["name"] == "old"

    def test_write_nested_tables(self, tmp_path):
        path = tmp_path / "config.toml"
        TomlAdapter().write(path, {
            "model_providers": {"demo": {"name": "demo", "base_url": "https://x", "requires_openai_auth": True}},
        }, MergeMode.NEW_OVERRIDE_OLD)

        data = TomlAdapter().read(path)
        assert data["model_providers"]["demo"] == {
            "name": "demo", "base_url": "https://x", "requires_openai_auth": True,
        }

    def test_none_removes_nested_key(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[features]\nplan_tool = true\nkeep = true\n", encoding="utf-8")

        TomlAdapter().write(path, {"features": {"plan_tool": None}}, MergeMode.NEW_OVERRIDE_OLD)

        assert TomlAdapter().read(path) == {"features": {"keep": True}}


class TestConfigService:
    def test_list_paths(self, temp_config_dir):
        paths = {p.path_id for p in ConfigService().list_paths("codex")}
        assert paths == {"config", "auth"}

    def test_unknown_tool_or_path(self, temp_config_dir):
        service = ConfigService()
        with pytest.raises(ConfigPathNotFound):
            service.get("vim", "config")
        with pytest.raises(ConfigPathNotFound):
            service.get("codex", "nope")

    def test_update_and_get_document(self, temp_config_dir):
        service = ConfigService()
        service.update("gemini", "env", {"GEMINI_API_KEY": "k"})
        document = service.get("gemini", "env")

        assert document.format.value == "env"
        assert document.data == {"GEMINI_API_KEY": "k"}
        assert (temp_config_dir / ".gemini" / ".env").exists()

    def test_set_overrides_existing(self, temp_config_dir):
        service = ConfigService()
        service.update("claude", "settings", {"theme": "dark"})
        service.set("claude", "settings", {"theme": "light"})
        assert service.read("claude", "settings") == {"theme": "light"}

    def test_validate_reads_file(self, temp_config_dir):
        path = temp_config_dir / ".gemini" / ".env"
        path.parent.mkdir(parents=True)
        path.write_text("A=1\n", encoding="utf-8")
        ConfigService().validate("gemini", "env")
