"""工具注册表与配置服务

每个工具声明自己的配置文件（path id -> 路径 + 格式）和写入器；
ConfigService 按 (tool, path id) 读写这些文件，对格式无感知。
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .adapters import BaseConfigAdapter, ConfigDocument, DocumentFormat, MergeMode, get_adapter
from .config import ProviderRecord
from .errors import ConfigPathNotFound
from .paths import (
    get_claude_dir,
    get_codex_dir,
    get_gemini_dir,
    get_openclaw_dir,
    get_openclaw_models_path,
    get_opencode_config_path,
)
from .writers.claude import write_claude_config
from .writers.codex import write_codex_config
from .writers.gemini import write_gemini_config
from .writers.opencode import write_opencode_config
from .writers.openclaw import write_openclaw_config

logger = logging.getLogger(__name__)


@dataclass
class ConfigPath:
    path_id: str
    resolve: Callable[[], Path]
    format: DocumentFormat
    description: str = ""


@dataclass
class ToolDescriptor:
    name: str
    display_name: str
    writer: Callable[[ProviderRecord, "ConfigService"], None]
    config_paths: Dict[str, ConfigPath] = field(default_factory=dict)


def _paths(*entries: ConfigPath) -> Dict[str, ConfigPath]:
    return {entry.path_id: entry for entry in entries}


TOOLS: Dict[str, ToolDescriptor] = {
    "codex": ToolDescriptor(
        name="codex",
        display_name="Codex",
        writer=write_codex_config,
        config_paths=_paths(
            ConfigPath("config", lambda: get_codex_dir() / "config.toml", DocumentFormat.TOML, "Codex 主配置"),
            ConfigPath("auth", lambda: get_codex_dir() / "auth.json", DocumentFormat.JSON, "Codex 认证"),
        ),
    ),
    "claude": ToolDescriptor(
        name="claude",
        display_name="Claude Code",
        writer=write_claude_config,
        config_paths=_paths(
            ConfigPath("settings", lambda: get_claude_dir() / "settings.json", DocumentFormat.JSON, "Claude Code 设置"),
        ),
    ),
    "gemini": ToolDescriptor(
        name="gemini",
        display_name="Gemini CLI",
        writer=write_gemini_config,
        config_paths=_paths(
            ConfigPath("settings", lambda: get_gemini_dir() / "settings.json", DocumentFormat.JSON, "Gemini CLI 设置"),
            ConfigPath("env", lambda: get_gemini_dir() / ".env", DocumentFormat.ENV, "Gemini CLI 环境变量"),
        ),
    ),
    "opencode": ToolDescriptor(
        name="opencode",
        display_name="OpenCode",
        writer=write_opencode_config,
        config_paths=_paths(
            ConfigPath("config", get_opencode_config_path, DocumentFormat.JSON, "OpenCode 配置"),
        ),
    ),
    "openclaw": ToolDescriptor(
        name="openclaw",
        display_name="OpenClaw",
        writer=write_openclaw_config,
        config_paths=_paths(
            ConfigPath("config", lambda: get_openclaw_dir() / "openclaw.json", DocumentFormat.JSON, "OpenClaw 主配置"),
            ConfigPath("models", get_openclaw_models_path, DocumentFormat.JSON, "OpenClaw agent 模型"),
        ),
    ),
}

# 同步时按此顺序逐个处理
TOOL_ORDER: Tuple[str, ...] = ("codex", "claude", "gemini", "opencode", "openclaw")


def get_tool(name: str) -> ToolDescriptor:
    try:
        return TOOLS[name]
    except KeyError:
        raise ConfigPathNotFound(f"Unknown tool '{name}'. Available: {', '.join(TOOL_ORDER)}") from None


class ConfigService:
    """Format-agnostic access to every tool's native config files."""

    def __init__(self, tools: Optional[Mapping[str, ToolDescriptor]] = None):
        self.tools = dict(tools) if tools is not None else TOOLS

    def _config_path(self, tool: str, path_id: str) -> ConfigPath:
        descriptor = self.tools.get(tool)
        if descriptor is None:
            raise ConfigPathNotFound(f"Unknown tool '{tool}'")
        entry = descriptor.config_paths.get(path_id)
        if entry is None:
            known = ", ".join(descriptor.config_paths)
            raise ConfigPathNotFound(f"Unknown config path '{path_id}' for {tool} (known: {known})")
        return entry

    def _resolve(self, tool: str, path_id: str) -> Tuple[Path, BaseConfigAdapter]:
        entry = self._config_path(tool, path_id)
        return entry.resolve(), get_adapter(entry.format)

    def list_paths(self, tool: str) -> List[ConfigPath]:
        if tool not in self.tools:
            raise ConfigPathNotFound(f"Unknown tool '{tool}'")
        return list(self.tools[tool].config_paths.values())

    def path(self, tool: str, path_id: str) -> Path:
        return self._config_path(tool, path_id).resolve()

    def managed_files(self, tool: str) -> List[Path]:
        return [entry.resolve() for entry in self.list_paths(tool)]

    def get(self, tool: str, path_id: str) -> ConfigDocument:
        path, adapter = self._resolve(tool, path_id)
        return adapter.read_document(path)

    def read(self, tool: str, path_id: str) -> Dict[str, Any]:
        return self.get(tool, path_id).data

    def update(self, tool: str, path_id: str, data: Mapping[str, Any],
               mode: MergeMode = MergeMode.OLD_OVERRIDE_NEW) -> Dict[str, Any]:
        path, adapter = self._resolve(tool, path_id)
        return adapter.write(path, data, mode)

    def set(self, tool: str, path_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """新值覆盖旧值"""
        return self.update(tool, path_id, data, MergeMode.NEW_OVERRIDE_OLD)

    def apply_layers(self, tool: str, path_id: str,
                     layers: Iterable[Tuple[Mapping[str, Any], MergeMode]]) -> Dict[str, Any]:
        path, adapter = self._resolve(tool, path_id)
        return adapter.update(path, layers)

    def replace(self, tool: str, path_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        path, adapter = self._resolve(tool, path_id)
        return adapter.replace(path, data)

    def validate(self, tool: str, path_id: str, data: Optional[Mapping[str, Any]] = None) -> None:
        path, adapter = self._resolve(tool, path_id)
        adapter.validate(adapter.read(path) if data is None else data)

    def apply_provider(self, tool: str, provider: ProviderRecord) -> None:
        """把服务商写入工具的原生配置"""
        descriptor = self.tools.get(tool)
        if descriptor is None:
            raise ConfigPathNotFound(f"Unknown tool '{tool}'")
        descriptor.writer(provider, self)
        logger.info("Applied provider %s to %s", provider.name, descriptor.display_name)
