"""MCP 服务器管理

MCP 服务器有独立的记录类型，保存在 ~/.ccman/mcp.json，
每次修改后写入各应用配置的 mcpServers（codex 为 mcp_servers）。
不是由 ccman 管理的条目保持不变，名称冲突时用户条目优先。
"""

import json
import logging
import shlex
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .adapters import BaseConfigAdapter, JsonAdapter, MergeMode, TomlAdapter
from .config import ProviderRecord
from .errors import NameConflict, ParseError, ProviderNotFound, ValidationFailed
from .fileio import atomic_write_text, file_lock, now_ms, read_text
from .paths import get_claude_json_path, get_codex_dir, get_gemini_dir, get_mcp_store_path

logger = logging.getLogger(__name__)

MCP_APPS = ("claude", "gemini", "codex")


class McpServer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    description: Optional[str] = None
    created_at: int = Field(alias="createdAt")
    last_modified: Optional[int] = Field(default=None, alias="lastModified")
    enabled_apps: List[str] = Field(default_factory=lambda: ["claude"], alias="enabledApps")

    @model_validator(mode="after")
    def _fill_last_modified(self) -> "McpServer":
        if self.last_modified is None:
            self.last_modified = self.created_at
        return self

    def app_entry(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"command": self.command, "args": list(self.args)}
        if self.env:
            entry["env"] = dict(self.env)
        return entry


class McpStore(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    servers: List[McpServer] = Field(default_factory=list)
    managed_server_names: Dict[str, List[str]] = Field(default_factory=dict, alias="managedServerNames")


# ---- 旧格式兼容：MCP 服务器曾复用 ProviderRecord 的字段 ----

def server_to_provider(server: McpServer) -> ProviderRecord:
    """baseUrl=command, apiKey=args, model=JSON env"""
    return ProviderRecord(
        id=server.id,
        name=server.name,
        desc=server.description,
        base_url=server.command,
        api_key=shlex.join(server.args),
        model=json.dumps(server.env) if server.env else None,
        created_at=server.created_at,
        last_modified=server.last_modified,
    )


def server_from_provider(provider: ProviderRecord) -> McpServer:
    env: Dict[str, str] = {}
    if provider.model:
        try:
            decoded = json.loads(provider.model)
        except json.JSONDecodeError as e:
            raise ValidationFailed(f"MCP server {provider.name}: env is not valid JSON") from e
        if isinstance(decoded, dict):
            env = {str(k): str(v) for k, v in decoded.items()}
    return McpServer(
        id=provider.id,
        name=provider.name,
        command=provider.base_url,
        args=shlex.split(provider.api_key) if provider.api_key else [],
        env=env,
        description=provider.desc,
        created_at=provider.created_at,
        last_modified=provider.last_modified,
    )


def migrate_mcp_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """旧版 mcp.json：providers 列表、managedServerNames 为数组"""
    migrated = dict(data)
    if "providers" in migrated and "servers" not in migrated:
        providers = [ProviderRecord.model_validate(p) for p in migrated.pop("providers")]
        migrated["servers"] = [server_from_provider(p).model_dump(by_alias=True) for p in providers]
        migrated.pop("currentProviderId", None)
    managed = migrated.get("managedServerNames")
    if isinstance(managed, list):
        migrated["managedServerNames"] = {"claude": managed}
    return migrated


def _app_target(app: str) -> Tuple[Path, BaseConfigAdapter, str]:
    if app == "claude":
        return get_claude_json_path(), JsonAdapter(), "mcpServers"
    if app == "gemini":
        return get_gemini_dir() / "settings.json", JsonAdapter(), "mcpServers"
    if app == "codex":
        return get_codex_dir() / "config.toml", TomlAdapter(), "mcp_servers"
    raise ValidationFailed(f"Unsupported MCP app '{app}'. Supported: {', '.join(MCP_APPS)}")


def write_app_servers(app: str, servers: List[McpServer], previously_managed: List[str]) -> List[str]:
    """写入某个应用的 MCP 配置，返回本次由 ccman 管理的名称"""
    path, adapter, key = _app_target(app)
    existing = adapter.read(path)
    current = existing.get(key) or {}
    user_entries = {name for name in current if name not in previously_managed}

    entries: Dict[str, Optional[Dict[str, Any]]] = {}
    managed_names = []
    for server in servers:
        if server.name in user_entries:
            logger.warning("%s already defines MCP server '%s', keeping the user entry", app, server.name)
            continue
        entries[server.name] = server.app_entry()
        managed_names.append(server.name)

    for name in previously_managed:
        if name not in entries and name not in user_entries and name in current:
            entries[name] = None

    if entries:
        # 整条替换，避免旧的 args/env 残留
        layers = [({key: {name: None for name in entries}}, MergeMode.NEW_OVERRIDE_OLD),
                  ({key: {n: e for n, e in entries.items() if e is not None}}, MergeMode.NEW_OVERRIDE_OLD)]
        adapter.update(path, layers)
    return managed_names


class McpManager:
    def __init__(self, apps: Tuple[str, ...] = MCP_APPS):
        self.apps = apps

    @property
    def store_path(self) -> Path:
        return get_mcp_store_path()

    def load(self) -> McpStore:
        path = self.store_path
        if not path.exists():
            return McpStore()
        try:
            data = json.loads(read_text(path))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"{path}: invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationFailed(f"{path}: expected an object")
        try:
            return McpStore.model_validate(migrate_mcp_data(data))
        except ValidationError as e:
            raise ValidationFailed(f"{path}: {e}") from e

    def save(self, store: McpStore) -> None:
        text = json.dumps(store.model_dump(by_alias=True, exclude_none=True), indent=2, ensure_ascii=False) + "\n"
        atomic_write_text(self.store_path, text)

    @contextmanager
    def _locked(self) -> Iterator[McpStore]:
        with file_lock(self.store_path):
            store = self.load()
            yield store
            self._sync_apps(store)
            self.save(store)

    def _sync_apps(self, store: McpStore) -> None:
        for app in self.apps:
            enabled = [s for s in store.servers if app in s.enabled_apps]
            previous = store.managed_server_names.get(app, [])
            if not enabled and not previous:
                continue
            store.managed_server_names[app] = write_app_servers(app, enabled, previous)

    def _find(self, store: McpStore, id_or_name: str) -> McpServer:
        lowered = id_or_name.lower()
        for server in store.servers:
            if server.id == id_or_name or server.name.lower() == lowered:
                return server
        raise ProviderNotFound(f"MCP server '{id_or_name}' not found")

    def _check_name(self, store: McpStore, name: str, exclude_id: Optional[str] = None) -> str:
        name = name.strip()
        if not name:
            raise ValidationFailed("MCP server name must not be empty")
        for server in store.servers:
            if server.name.lower() == name.lower() and server.id != exclude_id:
                raise NameConflict(f"MCP server '{name}' already exists")
        return name

    def _check_apps(self, apps: List[str]) -> List[str]:
        for app in apps:
            if app not in MCP_APPS:
                raise ValidationFailed(f"Unsupported MCP app '{app}'. Supported: {', '.join(MCP_APPS)}")
        return list(dict.fromkeys(apps))

    def list(self) -> List[McpServer]:
        return list(self.load().servers)

    def get(self, id_or_name: str) -> McpServer:
        return self._find(self.load(), id_or_name)

    def add(self, name: str, command: str, args: Optional[List[str]] = None,
            env: Optional[Dict[str, str]] = None, description: Optional[str] = None,
            enabled_apps: Optional[List[str]] = None) -> McpServer:
        if not command.strip():
            raise ValidationFailed("MCP server command must not be empty")
        with self._locked() as store:
            timestamp = now_ms()
            server = McpServer(
                id=f"mcp-{timestamp}-{uuid.uuid4().hex[:6]}",
                name=self._check_name(store, name),
                command=command.strip(),
                args=list(args or []),
                env=dict(env or {}),
                description=description,
                created_at=timestamp,
                last_modified=timestamp,
                enabled_apps=self._check_apps(enabled_apps or ["claude"]),
            )
            store.servers.append(server)
        return server

    def edit(self, id_or_name: str, name: Optional[str] = None, command: Optional[str] = None,
             args: Optional[List[str]] = None, env: Optional[Dict[str, str]] = None,
             description: Optional[str] = None) -> McpServer:
        with self._locked() as store:
            server = self._find(store, id_or_name)
            if name is not None:
                server.name = self._check_name(store, name, exclude_id=server.id)
            if command is not None:
                server.command = command.strip()
            if args is not None:
                server.args = list(args)
            if env is not None:
                server.env = dict(env)
            if description is not None:
                server.description = description
            server.last_modified = max(now_ms(), (server.last_modified or 0) + 1)
        return server

    def remove(self, id_or_name: str) -> McpServer:
        with self._locked() as store:
            server = self._find(store, id_or_name)
            store.servers = [s for s in store.servers if s.id != server.id]
        return server

    def set_app_enabled(self, id_or_name: str, app: str, enabled: bool) -> McpServer:
        self._check_apps([app])
        with self._locked() as store:
            server = self._find(store, id_or_name)
            apps = [a for a in server.enabled_apps if a != app]
            if enabled:
                apps.append(app)
            server.enabled_apps = apps
            server.last_modified = max(now_ms(), (server.last_modified or 0) + 1)
        return server


def parse_env_pairs(pairs: List[str]) -> Dict[str, str]:
    """KEY=VALUE 列表 -> dict"""
    env: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValidationFailed(f"Invalid env entry '{pair}', expected KEY=VALUE")
        key, value = pair.split("=", 1)
        env[key.strip()] = value
    return env
