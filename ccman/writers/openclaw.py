from typing import TYPE_CHECKING, Any, Dict, List

from ..adapters import MergeMode
from ..config import ProviderRecord
from ..paths import get_root_dir
from . import parse_model_meta

if TYPE_CHECKING:
    from ..tools import ConfigService

DEFAULT_MODEL_ID = "gpt-5.3-codex"


def _models_for(provider: ProviderRecord) -> List[Dict[str, Any]]:
    meta = parse_model_meta(provider.model)
    if meta is not None and isinstance(meta.get("models"), list) and meta["models"]:
        return meta["models"]
    model_id = provider.model if provider.model and meta is None else DEFAULT_MODEL_ID
    return [{"id": model_id, "name": model_id}]


def build_provider_entry(provider: ProviderRecord) -> Dict[str, Any]:
    return {
        "baseUrl": provider.base_url,
        "apiKey": provider.api_key,
        "api": "openai-responses",
        "models": _models_for(provider),
    }


def write_openclaw_config(provider: ProviderRecord, service: "ConfigService") -> None:
    """写入 ~/.openclaw/openclaw.json 和 agent 的 models.json"""
    entry = build_provider_entry(provider)
    primary = f"{provider.name}/{entry['models'][0]['id']}"

    service.apply_layers("openclaw", "config", [
        ({
            "models": {"mode": "merge"},
            "agents": {"defaults": {"workspace": str(get_root_dir()), "thinkingDefault": "xhigh"}},
        }, MergeMode.OLD_OVERRIDE_NEW),
        ({
            "models": {"providers": {provider.name: entry}},
            "agents": {"defaults": {"model": {"primary": primary}}},
        }, MergeMode.NEW_OVERRIDE_OLD),
    ])
    service.apply_layers("openclaw", "models", [
        ({"providers": {provider.name: entry}}, MergeMode.NEW_OVERRIDE_OLD),
    ])
