import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ParseError, ValidationFailed
from .fileio import atomic_write_text, ensure_private_dir, file_lock, now_ms, read_text
from .local_secret import decrypt_local_secret, encrypt_local_secret
from .paths import get_ccman_dir, get_global_config_path, get_store_path

logger = logging.getLogger(__name__)


class ProviderRecord(BaseModel):
    """一个服务商配置（名称 + Base URL + API Key + 模型）"""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str
    desc: Optional[str] = None
    base_url: str = Field(default="", alias="baseUrl")
    api_key: str = Field(default="", alias="apiKey")
    model: Optional[str] = None
    created_at: int = Field(alias="createdAt")
    last_modified: Optional[int] = Field(default=None, alias="lastModified")
    last_used_at: Optional[int] = Field(default=None, alias="lastUsedAt")

    @model_validator(mode="after")
    def _fill_last_modified(self) -> "ProviderRecord":
        # 旧数据没有 lastModified，按 createdAt 补齐
        if self.last_modified is None:
            self.last_modified = self.created_at
        return self

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PresetTemplate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    base_url: str = Field(default="", alias="baseUrl")
    description: str = ""


class ProviderStore(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_provider_id: Optional[str] = Field(default=None, alias="currentProviderId")
    providers: List[ProviderRecord] = Field(default_factory=list)
    presets: List[PresetTemplate] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_invariants(self) -> "ProviderStore":
        seen = set()
        for provider in self.providers:
            if provider.id in seen:
                raise ValueError(f"duplicate provider id {provider.id!r}")
            seen.add(provider.id)
        if self.current_provider_id is not None and self.current_provider_id not in seen:
            raise ValueError(f"currentProviderId {self.current_provider_id!r} does not match any provider")
        return self

    def get(self, provider_id: str) -> Optional[ProviderRecord]:
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None

    def find_by_name(self, name: str) -> Optional[ProviderRecord]:
        lowered = name.strip().lower()
        for provider in self.providers:
            if provider.name.lower() == lowered:
                return provider
        return None

    def current(self) -> Optional[ProviderRecord]:
        if self.current_provider_id is None:
            return None
        return self.get(self.current_provider_id)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.current_provider_id is not None:
            data["currentProviderId"] = self.current_provider_id
        data["providers"] = [p.to_dict() for p in self.providers]
        if self.presets:
            data["presets"] = [p.model_dump(by_alias=True) for p in self.presets]
        return data


def parse_store(data: Any, source: str = "store") -> ProviderStore:
    """Validate a decoded JSON value as a :class:`ProviderStore`."""
    if not isinstance(data, dict):
        raise ValidationFailed(f"{source}: expected an object, got {type(data).__name__}")
    try:
        return ProviderStore.model_validate(data)
    except ValidationError as e:
        raise ValidationFailed(f"{source}: {e}") from e


class SyncConfig(BaseModel):
    """WebDAV 同步配置"""

    model_config = ConfigDict(populate_by_name=True)

    webdav_url: str = Field(alias="webdavUrl")
    username: str = ""
    password: str = ""
    auth_type: Literal["password", "digest"] = Field(default="password", alias="authType")
    remote_dir: str = Field(default="/", alias="remoteDir")
    sync_password: Optional[str] = Field(default=None, alias="syncPassword")
    remember_sync_password: bool = Field(default=False, alias="rememberSyncPassword")
    last_sync: Optional[int] = Field(default=None, alias="lastSync")


class GlobalConfig(BaseModel):
    version: str = "1.0.0"
    sync: Optional[SyncConfig] = None


class ConfigManager:
    def __init__(self):
        self.config_dir = get_ccman_dir()
        self.global_config_path = get_global_config_path()

    def ensure_config_dir(self) -> Path:
        return ensure_private_dir(self.config_dir)

    # ---- provider stores ----

    def store_path(self, tool: str) -> Path:
        return get_store_path(tool)

    def store_exists(self, tool: str) -> bool:
        return self.store_path(tool).exists()

    def load_store(self, tool: str) -> ProviderStore:
        path = self.store_path(tool)
        if not path.exists():
            return ProviderStore()
        try:
            data = json.loads(read_text(path))
        except UnicodeDecodeError as e:
            raise ParseError(f"{path}: not valid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise ParseError(f"{path}: invalid JSON: {e}") from e
        return parse_store(data, str(path))

    def save_store(self, tool: str, store: ProviderStore) -> None:
        text = json.dumps(store.to_dict(), indent=2, ensure_ascii=False) + "\n"
        atomic_write_text(self.store_path(tool), text)

    @contextmanager
    def locked_store(self, tool: str) -> Iterator[ProviderStore]:
        """读-改-写：持锁加载，退出时保存（异常时不保存）"""
        with file_lock(self.store_path(tool)):
            store = self.load_store(tool)
            yield store
            self.save_store(tool, store)

    # ---- global config ----

    def get_global_config(self) -> GlobalConfig:
        if not self.global_config_path.exists():
            return GlobalConfig()
        try:
            with open(self.global_config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ParseError(f"{self.global_config_path}: {e}") from e
        try:
            return GlobalConfig(**data) if data else GlobalConfig()
        except ValidationError as e:
            raise ValidationFailed(f"{self.global_config_path}: {e}") from e

    def save_global_config(self, config: GlobalConfig) -> None:
        text = yaml.dump(config.model_dump(by_alias=True, exclude_none=True),
                         default_flow_style=False, allow_unicode=True)
        atomic_write_text(self.global_config_path, text)

    def get_sync_config(self) -> Optional[SyncConfig]:
        """读取同步配置并解密记住的密码"""
        stored = self.get_global_config().sync
        if stored is None:
            return None
        updates: Dict[str, Any] = {}
        if stored.password:
            updates["password"] = decrypt_local_secret(stored.password)
        if stored.sync_password:
            updates["sync_password"] = decrypt_local_secret(stored.sync_password)
        return stored.model_copy(update=updates)

    def save_sync_config(self, sync_config: SyncConfig) -> None:
        global_config = self.get_global_config()
        stored = sync_config.model_copy(update={
            "password": encrypt_local_secret(sync_config.password) if sync_config.password else "",
            "sync_password": (
                encrypt_local_secret(sync_config.sync_password)
                if sync_config.remember_sync_password and sync_config.sync_password
                else None
            ),
        })
        global_config.sync = stored
        self.save_global_config(global_config)
        logger.info("Saved sync config for %s", sync_config.webdav_url)

    def delete_sync_config(self) -> bool:
        global_config = self.get_global_config()
        if global_config.sync is None:
            return False
        global_config.sync = None
        self.save_global_config(global_config)
        return True

    def update_last_sync(self, timestamp: Optional[int] = None) -> None:
        global_config = self.get_global_config()
        if global_config.sync is None:
            return
        global_config.sync.last_sync = timestamp if timestamp is not None else now_ms()
        self.save_global_config(global_config)
