import logging
import shutil
from typing import TYPE_CHECKING, Any, Dict

from ..adapters import MergeMode
from ..config import ProviderRecord

if TYPE_CHECKING:
    from ..tools import ConfigService

logger = logging.getLogger(__name__)

CODEX_DEFAULTS: Dict[str, Any] = {
    "model": "gpt-5.2-codex",
    "model_reasoning_effort": "high",
    "model_verbosity": "high",
    "web_search": "live",
    "disable_response_storage": True,
    "windows_wsl_setup_acknowledged": True,
    "sandbox_mode": "workspace-write",
    "sandbox_workspace_write": {"network_access": True},
}

# 新版 Codex 已移除的 features 开关
DEPRECATED_FEATURES = (
    "web_search_request",
    "plan_tool",
    "view_image_tool",
    "rmcp_client",
    "streamable_shell",
)


def write_codex_config(provider: ProviderRecord, service: "ConfigService") -> None:
    """写入 ~/.codex/config.toml 和 ~/.codex/auth.json"""
    existing = service.read("codex", "config")

    managed: Dict[str, Any] = {
        "model_provider": provider.name,
        "model_providers": {
            provider.name: {
                "name": provider.name,
                "base_url": provider.base_url,
                "wire_api": "responses",
                "requires_openai_auth": True,
            }
        },
    }
    if provider.model:
        managed["model"] = provider.model

    features = existing.get("features")
    if isinstance(features, dict):
        stale = {key: None for key in DEPRECATED_FEATURES if key in features}
        if stale:
            managed["features"] = stale

    service.apply_layers("codex", "config", [
        (CODEX_DEFAULTS, MergeMode.OLD_OVERRIDE_NEW),
        (managed, MergeMode.NEW_OVERRIDE_OLD),
    ])

    auth_path = service.path("codex", "auth")
    if auth_path.exists():
        shutil.copy2(auth_path, auth_path.with_name(auth_path.name + ".bak"))
        logger.debug("Backed up %s", auth_path)
    service.replace("codex", "auth", {"OPENAI_API_KEY": provider.api_key})
