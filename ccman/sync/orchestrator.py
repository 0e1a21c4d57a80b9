"""同步编排

- upload: 加密 apiKey 后上传每个工具的 store
- download: 下载、校验、解密，备份本地后覆盖；失败时恢复全部备份
- merge_and_push: 与远程合并，有变化时写本地并推送合并结果
- push_metadata / pull_metadata: 不含 apiKey 的旧版同步
"""

import json
import logging
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from ..config import ConfigManager, ProviderRecord, ProviderStore, SyncConfig, parse_store
from ..errors import (
    NothingToSync,
    RemoteDataInvalid,
    RemoteError,
    RemoteNotFound,
    SyncError,
    ValidationFailed,
)
from ..fileio import create_backup, file_lock, restore_backups
from ..paths import remote_store_path
from ..tools import TOOL_ORDER, ConfigService
from .crypto import decrypt_providers, encrypt_providers
from .merge import merge_providers
from .remote import RemoteStore, create_remote_store, join_path

logger = logging.getLogger(__name__)

REQUIRED_PROVIDER_FIELDS = ("id", "name", "createdAt")

RemoteSnapshot = Tuple[Optional[str], List[ProviderRecord]]


@dataclass
class SyncResult:
    operation: str
    tools: List[str] = field(default_factory=list)
    has_changes: bool = True
    backups: List[Path] = field(default_factory=list)


def parse_remote_payload(text: str, source: str, require_api_key: bool = True) -> RemoteSnapshot:
    """解析并校验远程 JSON，返回 (currentProviderId, providers)"""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise RemoteDataInvalid(f"{source}: invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("providers"), list):
        raise RemoteDataInvalid(f"{source}: expected an object with a providers list")

    required = REQUIRED_PROVIDER_FIELDS + (("apiKey",) if require_api_key else ())
    for index, provider in enumerate(data["providers"]):
        if not isinstance(provider, dict):
            raise RemoteDataInvalid(f"{source}: providers[{index}] is not an object")
        missing = [key for key in required if key not in provider]
        if missing:
            raise RemoteDataInvalid(f"{source}: providers[{index}] missing {', '.join(missing)}")

    try:
        store = parse_store({
            "currentProviderId": data.get("currentProviderId"),
            "providers": data["providers"],
        }, source)
    except ValidationFailed as e:
        raise RemoteDataInvalid(str(e)) from e
    return store.current_provider_id, store.providers


def _payload(current_provider_id: Optional[str], providers: Sequence[ProviderRecord],
             strip_api_key: bool = False) -> str:
    records = []
    for provider in providers:
        record = provider.to_dict()
        if strip_api_key:
            record.pop("apiKey", None)
        records.append(record)
    return json.dumps({"currentProviderId": current_provider_id, "providers": records},
                      indent=2, ensure_ascii=False)


def _follow(replaced_ids: Dict[str, str], provider_id: Optional[str]) -> Optional[str]:
    seen: Set[str] = set()
    while provider_id in replaced_ids and provider_id not in seen:
        seen.add(provider_id)
        provider_id = replaced_ids[provider_id]
    return provider_id


class LocalTransaction:
    """Track backups made during one sync operation so they can be rolled back."""

    def __init__(self, config_manager: ConfigManager, config_service: ConfigService):
        self.config_manager = config_manager
        self.config_service = config_service
        self.backups: List[Path] = []
        self.created: List[Path] = []
        self._protected: Set[Path] = set()

    def protect(self, path: Path) -> None:
        """覆盖前备份；文件原本不存在则记录下来以便回滚时删除"""
        path = Path(path)
        if path in self._protected:
            return
        self._protected.add(path)
        if path.exists():
            self.backups.append(create_backup(path))
        else:
            self.created.append(path)

    def write_store(self, tool: str, store: ProviderStore) -> None:
        self.protect(self.config_manager.store_path(tool))
        self.config_manager.save_store(tool, store)

    def apply_provider(self, tool: str, provider: ProviderRecord) -> None:
        for path in self.config_service.managed_files(tool):
            self.protect(path)
        self.config_service.apply_provider(tool, provider)

    def rollback(self) -> None:
        failures = restore_backups(self.backups)
        for path in self.created:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Failed to remove %s during rollback: %s", path, e)
        if failures:
            logger.error("%d backup(s) could not be restored", len(failures))


class SyncOrchestrator:
    def __init__(self, remote: RemoteStore, remote_dir: str = "/",
                 config_manager: Optional[ConfigManager] = None,
                 config_service: Optional[ConfigService] = None,
                 tools: Sequence[str] = TOOL_ORDER):
        self.remote = remote
        self.remote_dir = remote_dir
        self.config_manager = config_manager or ConfigManager()
        self.config_service = config_service or ConfigService()
        self.tools = tuple(tools)

    @classmethod
    def from_config(cls, sync_config: SyncConfig, **kwargs: Any) -> "SyncOrchestrator":
        return cls(create_remote_store(sync_config), sync_config.remote_dir, **kwargs)

    def remote_path(self, tool: str) -> str:
        return remote_store_path(self.remote_dir, tool)

    def metadata_path(self, tool: str) -> str:
        return join_path(self.remote_dir, ".ccman", "meta", f"{tool}.json")

    @contextmanager
    def _transaction(self, operation: str, tools: Sequence[str]) -> Iterator[LocalTransaction]:
        """Lock the stores, and restore every backup if the body fails."""
        tx = LocalTransaction(self.config_manager, self.config_service)
        with ExitStack() as locks:
            for tool in tools:
                locks.enter_context(file_lock(self.config_manager.store_path(tool)))
            try:
                yield tx
            except Exception as e:
                logger.error("%s failed, restoring local files: %s", operation, e)
                tx.rollback()
                raise SyncError(f"{operation} failed: {e}") from e

    async def _fetch(self, path: str, require_api_key: bool = True) -> Optional[RemoteSnapshot]:
        if not await self.remote.exists(path):
            return None
        text = await self.remote.download(path)
        return parse_remote_payload(text, path, require_api_key)

    async def _fetch_all(self, operation: str, metadata: bool = False) -> Dict[str, RemoteSnapshot]:
        snapshots: Dict[str, RemoteSnapshot] = {}
        try:
            for tool in self.tools:
                path = self.metadata_path(tool) if metadata else self.remote_path(tool)
                snapshot = await self._fetch(path, require_api_key=not metadata)
                if snapshot is not None:
                    snapshots[tool] = snapshot
        except RemoteError as e:
            raise SyncError(f"{operation} failed: {e}") from e
        return snapshots

    def _local_tools(self) -> List[str]:
        return [tool for tool in self.tools if self.config_manager.store_exists(tool)]

    async def upload(self, password: str) -> SyncResult:
        """加密上传本地所有 store"""
        tools = self._local_tools()
        if not tools:
            raise NothingToSync("No local provider data to upload")

        for tool in tools:
            store = self.config_manager.load_store(tool)
            payload = _payload(store.current_provider_id, encrypt_providers(store.providers, password))
            try:
                await self.remote.upload(self.remote_path(tool), payload)
            except RemoteError as e:
                raise SyncError(f"upload failed: {e}") from e
            logger.info("Uploaded %s (%d providers)", tool, len(store.providers))

        self.config_manager.update_last_sync()
        return SyncResult(operation="upload", tools=tools)

    async def download(self, password: str) -> SyncResult:
        """用远程数据覆盖本地（保留本地 presets）"""
        snapshots = await self._fetch_all("download")
        if not snapshots:
            raise RemoteNotFound("No remote data found, upload first")

        # 先全部解密，密码错误时不动本地文件
        decrypted = {
            tool: (current_id, decrypt_providers(providers, password))
            for tool, (current_id, providers) in snapshots.items()
        }

        with self._transaction("download", list(decrypted)) as tx:
            for tool, (current_id, providers) in decrypted.items():
                local = self.config_manager.load_store(tool)
                store = ProviderStore(
                    current_provider_id=current_id,
                    providers=providers,
                    presets=local.presets,
                )
                tx.write_store(tool, store)
                current = store.current()
                if current is not None:
                    tx.apply_provider(tool, current)

        self.config_manager.update_last_sync()
        return SyncResult(operation="download", tools=list(decrypted), backups=tx.backups)

    async def merge_and_push(self, password: str) -> SyncResult:
        """合并本地与远程，两端收敛到同一结果"""
        snapshots = await self._fetch_all("merge")
        if not snapshots:
            logger.info("Remote is empty, uploading local data")
            result = await self.upload(password)
            result.operation = "merge"
            return result

        remote_plain = {
            tool: (current_id, decrypt_providers(providers, password))
            for tool, (current_id, providers) in snapshots.items()
        }

        with self._transaction("merge", self.tools) as tx:
            merged_stores: Dict[str, ProviderStore] = {}
            changed: List[str] = []
            for tool in self.tools:
                local = self.config_manager.load_store(tool)
                remote_current, remote_providers = remote_plain.get(tool, (None, []))
                outcome = merge_providers(local.providers, remote_providers)
                if not outcome.has_changes:
                    continue

                merged_ids = {p.id for p in outcome.merged}
                current_id = _follow(outcome.replaced_ids, local.current_provider_id)
                if current_id not in merged_ids:
                    current_id = remote_current if remote_current in merged_ids else None

                merged_stores[tool] = ProviderStore(
                    current_provider_id=current_id,
                    providers=outcome.merged,
                    presets=local.presets,
                )
                changed.append(tool)
                logger.info("%s: merged %d local + %d remote -> %d providers",
                            tool, len(local.providers), len(remote_providers), len(outcome.merged))

            if not changed:
                return SyncResult(operation="merge", has_changes=False)

            for tool in changed:
                store = merged_stores[tool]
                tx.write_store(tool, store)
                current = store.current()
                if current is not None:
                    tx.apply_provider(tool, current)

            for tool in changed:
                store = merged_stores[tool]
                payload = _payload(store.current_provider_id, encrypt_providers(store.providers, password))
                await self.remote.upload(self.remote_path(tool), payload)

        self.config_manager.update_last_sync()
        return SyncResult(operation="merge", tools=changed, has_changes=True, backups=tx.backups)

    async def push_metadata(self) -> SyncResult:
        """旧版同步：上传不含 apiKey 的配置"""
        tools = self._local_tools()
        if not tools:
            raise NothingToSync("No local provider data to upload")

        for tool in tools:
            store = self.config_manager.load_store(tool)
            try:
                await self.remote.upload(self.metadata_path(tool),
                                         _payload(store.current_provider_id, store.providers, strip_api_key=True))
            except RemoteError as e:
                raise SyncError(f"upload failed: {e}") from e

        self.config_manager.update_last_sync()
        return SyncResult(operation="push-metadata", tools=tools)

    async def pull_metadata(self) -> SyncResult:
        """旧版同步：下载配置，apiKey 按 id 保留本地值"""
        snapshots = await self._fetch_all("download", metadata=True)
        if not snapshots:
            raise RemoteNotFound("No remote data found, upload first")

        with self._transaction("download", list(snapshots)) as tx:
            for tool, (current_id, providers) in snapshots.items():
                local = self.config_manager.load_store(tool)
                local_keys = {p.id: p.api_key for p in local.providers}
                restored = [p.model_copy(update={"api_key": local_keys.get(p.id, "")}) for p in providers]
                store = ProviderStore(current_provider_id=current_id, providers=restored, presets=local.presets)
                tx.write_store(tool, store)
                current = store.current()
                if current is not None and current.api_key:
                    tx.apply_provider(tool, current)

        self.config_manager.update_last_sync()
        return SyncResult(operation="pull-metadata", tools=list(snapshots), backups=tx.backups)

    async def remote_info(self) -> Dict[str, bool]:
        """每个工具在远程是否有数据"""
        info: Dict[str, bool] = {}
        try:
            for tool in self.tools:
                info[tool] = await self.remote.exists(self.remote_path(tool))
        except RemoteError as e:
            raise SyncError(f"status failed: {e}") from e
        return info

    async def test_connection(self) -> bool:
        try:
            await self.remote.list_directory(self.remote_dir)
        except RemoteNotFound:
            # 目录尚未创建，但服务器可达且认证通过
            return True
        except RemoteError as e:
            raise SyncError(f"connection failed: {e}") from e
        return True

    async def close(self) -> None:
        await self.remote.close()
