import re
from typing import TYPE_CHECKING, Any, Dict

from ..adapters import MergeMode
from ..config import ProviderRecord
from . import parse_model_meta

if TYPE_CHECKING:
    from ..tools import ConfigService

OPENCODE_SCHEMA = "https://opencode.ai/config.json"
DEFAULT_NPM = "@ai-sdk/openai"


def provider_key(name: str) -> str:
    key = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return key or "provider"


def write_opencode_config(provider: ProviderRecord, service: "ConfigService") -> None:
    """写入 ~/.config/opencode/opencode.json 的 provider.<key>"""
    meta = parse_model_meta(provider.model) or {}

    entry: Dict[str, Any] = {
        "npm": meta.get("npm") or DEFAULT_NPM,
        "name": provider.name,
        "options": {
            "baseURL": provider.base_url,
            "apiKey": provider.api_key,
        },
    }
    models = meta.get("models")
    if isinstance(models, dict) and models:
        entry["models"] = models

    service.apply_layers("opencode", "config", [
        ({"$schema": OPENCODE_SCHEMA}, MergeMode.OLD_OVERRIDE_NEW),
        ({"provider": {provider_key(provider.name): entry}}, MergeMode.NEW_OVERRIDE_OLD),
    ])
