from typing import TYPE_CHECKING

from ..adapters import MergeMode
from ..config import ProviderRecord
from ..templates import render_template
from . import provider_variables

if TYPE_CHECKING:
    from ..tools import ConfigService

CLAUDE_SETTINGS_TEMPLATE = {
    "env": {
        "ANTHROPIC_AUTH_TOKEN": "{{apiKey}}",
        "ANTHROPIC_BASE_URL": "{{baseUrl}}",
        "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC": 1,
        "CLAUDE_CODE_MAX_OUTPUT_TOKENS": 32000,
    },
    "permissions": {"allow": [], "deny": []},
}


def write_claude_config(provider: ProviderRecord, service: "ConfigService") -> None:
    """写入 ~/.claude/settings.json

    模板字段只补缺，认证字段强制覆盖。
    """
    defaults = render_template(CLAUDE_SETTINGS_TEMPLATE, provider_variables(provider))
    managed = {
        "env": {
            "ANTHROPIC_AUTH_TOKEN": provider.api_key,
            "ANTHROPIC_BASE_URL": provider.base_url,
        }
    }
    service.apply_layers("claude", "settings", [
        (defaults, MergeMode.OLD_OVERRIDE_NEW),
        (managed, MergeMode.NEW_OVERRIDE_OLD),
    ])
