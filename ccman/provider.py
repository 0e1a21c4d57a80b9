import json
import logging
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ConfigManager, PresetTemplate, ProviderRecord, ProviderStore, parse_store
from .errors import NameConflict, ParseError, ProviderNotFound, ValidationFailed
from .fileio import create_backup, file_lock, now_ms, read_text, restore_backups
from .presets import get_builtin_presets
from .tools import TOOL_ORDER, ConfigService, get_tool

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "desc", "base_url", "api_key", "model")


def generate_provider_id(tool: str) -> str:
    """{tool}-{timestamp}-{random}"""
    return f"{tool}-{now_ms()}-{uuid.uuid4().hex[:6]}"


class ProviderManager:
    """单个工具的服务商管理"""

    def __init__(self, tool: str, config_manager: Optional[ConfigManager] = None,
                 config_service: Optional[ConfigService] = None):
        self.tool = get_tool(tool).name
        self.config_manager = config_manager or ConfigManager()
        self.config_service = config_service or ConfigService()

    def _check_name(self, store: ProviderStore, name: str, exclude_id: Optional[str] = None) -> str:
        name = name.strip()
        if not name:
            raise ValidationFailed("Provider name must not be empty")
        clash = store.find_by_name(name)
        if clash is not None and clash.id != exclude_id:
            raise NameConflict(f"Provider '{name}' already exists")
        return name

    def add(self, name: str, base_url: str, api_key: str, model: Optional[str] = None,
            desc: Optional[str] = None) -> ProviderRecord:
        with self.config_manager.locked_store(self.tool) as store:
            name = self._check_name(store, name)
            timestamp = now_ms()
            provider = ProviderRecord(
                id=generate_provider_id(self.tool),
                name=name,
                desc=desc or None,
                base_url=base_url.strip(),
                api_key=api_key.strip(),
                model=model or None,
                created_at=timestamp,
                last_modified=timestamp,
            )
            store.providers.append(provider)
        logger.info("Added %s provider %s (%s)", self.tool, provider.name, provider.id)
        return provider

    def list(self) -> List[ProviderRecord]:
        return list(self.config_manager.load_store(self.tool).providers)

    def get(self, provider_id: str) -> ProviderRecord:
        provider = self.config_manager.load_store(self.tool).get(provider_id)
        if provider is None:
            raise ProviderNotFound(f"Provider '{provider_id}' not found")
        return provider

    def find_by_name(self, name: str) -> Optional[ProviderRecord]:
        return self.config_manager.load_store(self.tool).find_by_name(name)

    def resolve(self, id_or_name: str) -> ProviderRecord:
        store = self.config_manager.load_store(self.tool)
        provider = store.get(id_or_name) or store.find_by_name(id_or_name)
        if provider is None:
            raise ProviderNotFound(f"Provider '{id_or_name}' not found")
        return provider

    def current(self) -> Optional[ProviderRecord]:
        return self.config_manager.load_store(self.tool).current()

    def switch(self, id_or_name: str) -> ProviderRecord:
        """切换当前服务商并写入工具配置"""
        with self.config_manager.locked_store(self.tool) as store:
            provider = store.get(id_or_name) or store.find_by_name(id_or_name)
            if provider is None:
                raise ProviderNotFound(f"Provider '{id_or_name}' not found")
            # 先写工具配置，失败时 store 不保存
            self.config_service.apply_provider(self.tool, provider)
            provider.last_used_at = now_ms()
            store.current_provider_id = provider.id
        return provider

    def edit(self, provider_id: str, **updates: Any) -> ProviderRecord:
        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        with self.config_manager.locked_store(self.tool) as store:
            provider = store.get(provider_id)
            if provider is None:
                raise ProviderNotFound(f"Provider '{provider_id}' not found")

            changes = {key: value for key, value in updates.items() if value is not None}
            if "name" in changes:
                changes["name"] = self._check_name(store, changes["name"], exclude_id=provider.id)
            for key, value in changes.items():
                setattr(provider, key, value)
            # lastModified 不回退
            provider.last_modified = max(now_ms(), (provider.last_modified or 0) + 1)

            if store.current_provider_id == provider.id:
                self.config_service.apply_provider(self.tool, provider)
        return provider

    def remove(self, provider_id: str) -> ProviderRecord:
        with self.config_manager.locked_store(self.tool) as store:
            provider = store.get(provider_id)
            if provider is None:
                raise ProviderNotFound(f"Provider '{provider_id}' not found")
            store.providers = [p for p in store.providers if p.id != provider_id]
            if store.current_provider_id == provider_id:
                store.current_provider_id = None
        logger.info("Removed %s provider %s", self.tool, provider.name)
        return provider

    def clone(self, source_id: str, new_name: str, **overrides: Any) -> ProviderRecord:
        """复制一个服务商（新 id、新时间戳，不复制描述和使用时间）"""
        with self.config_manager.locked_store(self.tool) as store:
            source = store.get(source_id) or store.find_by_name(source_id)
            if source is None:
                raise ProviderNotFound(f"Provider '{source_id}' not found")
            name = self._check_name(store, new_name)
            timestamp = now_ms()
            fields = {key: value for key, value in overrides.items() if value is not None}
            unknown = set(fields) - set(EDITABLE_FIELDS)
            if unknown:
                raise ValidationFailed(f"Cannot override fields: {', '.join(sorted(unknown))}")
            clone = source.model_copy(update={
                "id": generate_provider_id(self.tool),
                "name": name,
                "desc": None,
                "created_at": timestamp,
                "last_modified": timestamp,
                "last_used_at": None,
                **{k: v for k, v in fields.items() if k != "name"},
            })
            store.providers.append(clone)
        return clone

    # ---- presets ----

    def list_presets(self) -> List[PresetTemplate]:
        return get_builtin_presets(self.tool) + list(self.config_manager.load_store(self.tool).presets)

    def _check_preset_name(self, store: ProviderStore, name: str, exclude: Optional[str] = None) -> str:
        name = name.strip()
        if not name:
            raise ValidationFailed("Preset name must not be empty")
        lowered = name.lower()
        if exclude is None or exclude.lower() != lowered:
            if any(p.name.lower() == lowered for p in get_builtin_presets(self.tool)):
                raise NameConflict(f"Preset '{name}' conflicts with a built-in preset")
            if any(p.name.lower() == lowered for p in store.presets):
                raise NameConflict(f"Preset '{name}' already exists")
        return name

    def add_preset(self, name: str, base_url: str, description: str = "") -> PresetTemplate:
        with self.config_manager.locked_store(self.tool) as store:
            preset = PresetTemplate(
                name=self._check_preset_name(store, name),
                base_url=base_url.strip(),
                description=description,
            )
            store.presets.append(preset)
        return preset

    def edit_preset(self, name: str, new_name: Optional[str] = None, base_url: Optional[str] = None,
                    description: Optional[str] = None) -> PresetTemplate:
        if any(p.name.lower() == name.lower() for p in get_builtin_presets(self.tool)):
            raise ValidationFailed(f"Built-in preset '{name}' is read-only")
        with self.config_manager.locked_store(self.tool) as store:
            preset = next((p for p in store.presets if p.name.lower() == name.lower()), None)
            if preset is None:
                raise ProviderNotFound(f"Preset '{name}' not found")
            if new_name is not None:
                preset.name = self._check_preset_name(store, new_name, exclude=preset.name)
            if base_url is not None:
                preset.base_url = base_url.strip()
            if description is not None:
                preset.description = description
        return preset

    def remove_preset(self, name: str) -> None:
        if any(p.name.lower() == name.lower() for p in get_builtin_presets(self.tool)):
            raise ValidationFailed(f"Built-in preset '{name}' is read-only")
        with self.config_manager.locked_store(self.tool) as store:
            remaining = [p for p in store.presets if p.name.lower() != name.lower()]
            if len(remaining) == len(store.presets):
                raise ProviderNotFound(f"Preset '{name}' not found")
            store.presets = remaining


def export_stores(target_dir: Path, config_manager: Optional[ConfigManager] = None) -> List[str]:
    """复制所有存在的 store 文件到目标目录"""
    config_manager = config_manager or ConfigManager()
    target_dir = Path(target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    exported = []
    for tool in TOOL_ORDER:
        source = config_manager.store_path(tool)
        if source.exists():
            destination = target_dir / source.name
            shutil.copy2(source, destination)
            destination.chmod(0o600)
            exported.append(source.name)

    if not exported:
        raise ValidationFailed("No provider stores to export")
    return exported


def import_stores(source_dir: Path, config_manager: Optional[ConfigManager] = None) -> Dict[str, Any]:
    """从目录导入 store 文件

    先校验全部文件，再备份本地文件逐个写入；任一写入失败时恢复全部备份。
    """
    config_manager = config_manager or ConfigManager()
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise ValidationFailed(f"Not a directory: {source_dir}")

    incoming: Dict[str, ProviderStore] = {}
    for tool in TOOL_ORDER:
        candidate = source_dir / f"{tool}.json"
        if not candidate.exists():
            continue
        try:
            data = json.loads(read_text(candidate))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"{candidate}: invalid JSON: {e}") from e
        incoming[tool] = parse_store(data, str(candidate))

    if not incoming:
        raise ValidationFailed(f"No provider stores found in {source_dir}")

    backups: List[Path] = []
    created: List[Path] = []
    try:
        for tool, store in incoming.items():
            path = config_manager.store_path(tool)
            with file_lock(path):
                if path.exists():
                    backups.append(create_backup(path))
                else:
                    created.append(path)
                config_manager.save_store(tool, store)
    except Exception:
        restore_backups(backups)
        for path in created:
            path.unlink(missing_ok=True)
        raise

    return {"imported": [f"{tool}.json" for tool in incoming], "backups": [str(b) for b in backups]}

