"""Tests for the GMN one-shot setup."""

import pytest
from click.testing import CliRunner

from ccman.cli import cli
from ccman.errors import ValidationFailed
from ccman.gmn import PROVIDER_NAME, parse_platforms, platform_base_urls, setup_gmn
from ccman.provider import ProviderManager


class TestParsePlatforms:
    def test_default(self):
        assert parse_platforms(None) == ["codex", "opencode"]
        assert parse_platforms("  ") == ["codex", "opencode"]

    def test_all(self):
        assert parse_platforms("all") == ["claude", "codex", "gemini", "opencode"]

    def test_comma_list_is_normalized(self):
        assert parse_platforms(" Claude, gemini,claude ") == ["claude", "gemini"]

    def test_unknown_platform(self):
        with pytest.raises(ValidationFailed):
            parse_platforms("codex,openclaw")


def test_platform_base_urls_by_domain():
    assert platform_base_urls("cn")["codex"] == "https://gmn.chuangzuoli.cn/openai"
    assert platform_base_urls("com")["opencode"] == "https://gmn.chuangzuoli.com"
    assert platform_base_urls("com")["claude"] == "https://gmn.chuangzuoli.cn/api"
    with pytest.raises(ValidationFailed):
        platform_base_urls("org")


class TestSetupGmn:
    def test_adds_and_switches(self, temp_config_dir):
        result = setup_gmn("sk-gmn", ["claude", "codex"])

        assert result.success is True
        assert result.configured == ["claude", "codex"]
        claude = ProviderManager("claude").current()
        assert claude.name == PROVIDER_NAME
        assert claude.base_url == "https://gmn.chuangzuoli.cn/api"
        assert claude.api_key == "sk-gmn"
        assert ProviderManager("codex").current().base_url == "https://gmn.chuangzuoli.cn/openai"

    def test_existing_provider_is_updated(self, temp_config_dir):
        manager = ProviderManager("gemini")
        existing = manager.add("gmn", "https://old", "sk-old")

        setup_gmn("sk-new", ["gemini"])

        providers = manager.list()
        assert len(providers) == 1
        assert providers[0].id == existing.id
        assert providers[0].base_url == "https://gmn.chuangzuoli.cn/gemini"
        assert providers[0].api_key == "sk-new"
        assert manager.current().id == existing.id

    def test_failure_on_one_platform_continues(self, temp_config_dir):
        store = temp_config_dir / ".ccman" / "claude.json"
        store.parent.mkdir(parents=True)
        store.write_text("{broken", encoding="utf-8")

        result = setup_gmn("sk-gmn", ["claude", "codex"])

        assert result.success is False
        assert list(result.errors) == ["claude"]
        assert result.configured == ["codex"]

    def test_empty_api_key(self, temp_config_dir):
        with pytest.raises(ValidationFailed):
            setup_gmn("  ", ["codex"])


def test_gmn_command(temp_config_dir):
    result = CliRunner().invoke(cli, ["gmn", "--platform", "codex", "--domain", "com"], input="sk-typed\n")

    assert result.exit_code == 0, result.output
    assert "Codex" in result.output
    current = ProviderManager("codex").current()
    assert current.api_key == "sk-typed"
    assert current.base_url == "https://gmn.chuangzuoli.com"


def test_gmn_command_rejects_unknown_platform(temp_config_dir):
    result = CliRunner().invoke(cli, ["gmn", "--api-key", "k", "--platform", "vim"])
    assert result.exit_code == 1
    assert "Invalid platform" in result.output
