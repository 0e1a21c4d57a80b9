"""
ccman - AI 编程工具配置管理器

管理 Codex / Claude Code / Gemini CLI / OpenCode / OpenClaw 的服务商配置，
支持一键切换以及基于 WebDAV 的加密同步与合并。
"""

__version__ = "0.1.0"
__description__ = "Manage and sync provider configs for AI coding assistants"

from .config import ConfigManager, ProviderRecord, ProviderStore, GlobalConfig, SyncConfig
from .errors import CcmanError
from .provider import ProviderManager
from .compat import DeprecationNotices, LegacyToolManager, create_legacy_manager
from .utils import mask_sensitive_value, normalize_url, is_valid_url

__all__ = [
    "ConfigManager",
    "ProviderRecord",
    "ProviderStore",
    "GlobalConfig",
    "SyncConfig",
    "CcmanError",
    "ProviderManager",
    "DeprecationNotices",
    "LegacyToolManager",
    "create_legacy_manager",
    "mask_sensitive_value",
    "normalize_url",
    "is_valid_url",
]
