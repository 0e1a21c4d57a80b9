from typing import TYPE_CHECKING, Dict, Optional

from ..adapters import MergeMode
from ..config import ProviderRecord
from . import parse_model_meta

if TYPE_CHECKING:
    from ..tools import ConfigService

GEMINI_SETTINGS_TEMPLATE = {
    "ide": {"enabled": True},
    "security": {"auth": {"selectedType": "gemini-api-key"}},
}


def build_gemini_env(provider: ProviderRecord) -> Dict[str, Optional[str]]:
    """None 表示从 .env 中移除该键"""
    env: Dict[str, Optional[str]] = {
        "GOOGLE_GEMINI_BASE_URL": provider.base_url or None,
        "GEMINI_API_KEY": provider.api_key or None,
        "GEMINI_MODEL": None,
    }

    meta = parse_model_meta(provider.model)
    if meta is not None:
        if meta.get("defaultModel"):
            env["GEMINI_MODEL"] = str(meta["defaultModel"])
        extra = meta.get("env")
        if isinstance(extra, dict):
            for key, value in extra.items():
                env[str(key)] = None if value is None else str(value)
    elif provider.model:
        env["GEMINI_MODEL"] = provider.model

    return env


def write_gemini_config(provider: ProviderRecord, service: "ConfigService") -> None:
    """写入 ~/.gemini/settings.json 和 ~/.gemini/.env"""
    service.apply_layers("gemini", "settings", [
        (GEMINI_SETTINGS_TEMPLATE, MergeMode.OLD_OVERRIDE_NEW),
    ])
    service.apply_layers("gemini", "env", [
        (build_gemini_env(provider), MergeMode.NEW_OVERRIDE_OLD),
    ])
