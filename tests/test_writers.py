"""Tests for the per-tool native config writers."""

import json

import tomlkit

from ccman.config import ProviderRecord
from ccman.tools import ConfigService
from ccman.writers.gemini import build_gemini_env
from ccman.writers.openclaw import DEFAULT_MODEL_ID
from ccman.writers.opencode import provider_key

from conftest import make_provider


def _read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestClaudeWriter:
    def test_keeps_user_settings(self, temp_config_dir):
        settings = temp_config_dir / ".claude" / "settings.json"
        settings.parent.mkdir(parents=True)
        settings.write_text(json.dumps({
            "env": {"CLAUDE_CODE_MAX_OUTPUT_TOKENS": 8000, "ANTHROPIC_AUTH_TOKEN": "old"},
            "theme": "dark",
        }), encoding="utf-8")

        ConfigService().apply_provider("claude", make_provider(base_url="https://new", api_key="k-new"))

        data = _read_json(settings)
        assert data["theme"] == "dark"
        assert data["env"]["CLAUDE_CODE_MAX_OUTPUT_TOKENS"] == 8000
        assert data["env"]["ANTHROPIC_AUTH_TOKEN"] == "k-new"
        assert data["env"]["ANTHROPIC_BASE_URL"] == "https://new"
        assert data["permissions"] == {"allow": [], "deny": []}


class TestCodexWriter:
    def test_writes_config_and_auth(self, temp_config_dir):
        ConfigService().apply_provider("codex", make_provider(name="relay", base_url="https://relay/v1", api_key="sk-1"))

        codex_dir = temp_config_dir / ".codex"
        config = tomlkit.parse((codex_dir / "config.toml").read_text(encoding="utf-8")).unwrap()
        assert config["model_provider"] == "relay"
        assert config["model_providers"]["relay"]["base_url"] == "https://relay/v1"
        assert config["model_providers"]["relay"]["wire_api"] == "responses"
        assert config["model"] == "gpt-5.2-codex"
        assert _read_json(codex_dir / "auth.json") == {"OPENAI_API_KEY": "sk-1"}
        assert not (codex_dir / "auth.json.bak").exists()

    def test_preserves_user_values_and_drops_deprecated_features(self, temp_config_dir):
        codex_dir = temp_config_dir / ".codex"
        codex_dir.mkdir()
        (codex_dir / "config.toml").write_text(
            '# my settings\n'
            'model_reasoning_effort = "low"\n'
            '\n'
            '[features]\n'
            'plan_tool = true\n'
            'custom_flag = true\n',
            encoding="utf-8",
        )
        (codex_dir / "auth.json").write_text('{"OPENAI_API_KEY": "old", "tokens": {}}', encoding="utf-8")

        ConfigService().apply_provider("codex", make_provider(name="relay", model="gpt-5"))

        text = (codex_dir / "config.toml").read_text(encoding="utf-8")
        config = tomlkit.parse(text).unwrap()
        assert "# my settings" in text
        assert config["model_reasoning_effort"] == "low"
        assert config["model"] == "gpt-5"
        assert config["features"] == {"custom_flag": True}
        assert _read_json(codex_dir / "auth.json") == {"OPENAI_API_KEY": "k1"}
        assert _read_json(codex_dir / "auth.json.bak")["OPENAI_API_KEY"] == "old"


class TestGeminiWriter:
    def test_env_is_merged_and_model_removed(self, temp_config_dir):
        gemini_dir = temp_config_dir / ".gemini"
        gemini_dir.mkdir()
        (gemini_dir / ".env").write_text("GEMINI_MODEL=old\nOTHER=1\n", encoding="utf-8")

        ConfigService().apply_provider("gemini", make_provider(base_url="https://g", api_key="gk"))

        env = (gemini_dir / ".env").read_text(encoding="utf-8")
        assert env == "GEMINI_API_KEY=gk\nGOOGLE_GEMINI_BASE_URL=https://g\nOTHER=1\n"
        settings = _read_json(gemini_dir / "settings.json")
        assert settings["security"]["auth"]["selectedType"] == "gemini-api-key"

    def test_model_metadata(self):
        provider = make_provider(
            base_url="",
            model=json.dumps({"defaultModel": "gemini-2.5-pro", "env": {"EXTRA": 1, "DROP": None}}),
        )
        env = build_gemini_env(provider)
        assert env["GOOGLE_GEMINI_BASE_URL"] is None
        assert env["GEMINI_MODEL"] == "gemini-2.5-pro"
        assert env["EXTRA"] == "1"
        assert env["DROP"] is None

    def test_plain_model_name(self):
        assert build_gemini_env(make_provider(model="gemini-flash"))["GEMINI_MODEL"] == "gemini-flash"


class TestOpenCodeWriter:
    def test_provider_entry(self, temp_config_dir):
        path = temp_config_dir / ".config" / "opencode" / "opencode.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"theme": "tokyonight", "provider": {"other": {"name": "x"}}}), encoding="utf-8")

        ConfigService().apply_provider("opencode", make_provider(name="My Relay", base_url="https://r", api_key="ok"))

        data = _read_json(path)
        assert data["$schema"] == "https://opencode.ai/config.json"
        assert data["theme"] == "tokyonight"
        assert data["provider"]["other"] == {"name": "x"}
        entry = data["provider"]["my-relay"]
        assert entry["options"] == {"baseURL": "https://r", "apiKey": "ok"}
        assert entry["npm"] == "@ai-sdk/openai"

    def test_provider_key(self):
        assert provider_key("GMN (Beta)") == "gmn-beta"
        assert provider_key("!!!") == "provider"


class TestOpenClawWriter:
    def test_writes_config_and_models(self, temp_config_dir):
        ConfigService().apply_provider("openclaw", make_provider(name="gmn", base_url="https://o", api_key="ck"))

        config = _read_json(temp_config_dir / ".openclaw" / "openclaw.json")
        assert config["models"]["mode"] == "merge"
        assert config["models"]["providers"]["gmn"]["apiKey"] == "ck"
        assert config["agents"]["defaults"]["model"]["primary"] == f"gmn/{DEFAULT_MODEL_ID}"
        assert config["agents"]["defaults"]["thinkingDefault"] == "xhigh"

        models = _read_json(temp_config_dir / ".openclaw" / "agents" / "main" / "agent" / "models.json")
        assert models["providers"]["gmn"]["api"] == "openai-responses"

    def test_user_defaults_are_kept(self, temp_config_dir):
        path = temp_config_dir / ".openclaw" / "openclaw.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"agents": {"defaults": {"thinkingDefault": "low"}}}), encoding="utf-8")

        ConfigService().apply_provider("openclaw", ProviderRecord(
            id="p1", name="gmn", base_url="https://o", api_key="ck", model="custom-model", created_at=1,
        ))

        config = _read_json(path)
        assert config["agents"]["defaults"]["thinkingDefault"] == "low"
        assert config["agents"]["defaults"]["model"]["primary"] == "gmn/custom-model"
