"""旧版数据迁移

v1: ~/.ccman/config.json 中 providers 为数组，用 type 区分 codex / claude
v2: ~/.ccman/config.json 为索引，providers/*.json 存放 Claude 服务商详情
现行格式为每个工具一个 {tool}.json。
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ConfigManager, ProviderStore, parse_store
from .errors import CcmanError, ParseError
from .fileio import now_ms, read_text

logger = logging.getLogger(__name__)

LEGACY_CONFIG_NAME = "config.json"
LEGACY_BACKUP_NAME = "config.json.bak"
V2_PROVIDERS_DIR = "providers"
V1_TOOLS = ("codex", "claude")

REQUIRED_PROVIDER_FIELDS = ("id", "name", "baseUrl", "apiKey", "createdAt")


@dataclass
class MigrationResult:
    success: bool
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


def _load_json(path: Path) -> Any:
    try:
        return json.loads(read_text(path))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"{path}: invalid JSON: {e}") from e


def parse_iso_timestamp(value: Any) -> Optional[int]:
    """ISO 8601 -> Unix 毫秒；无法解析时返回 None"""
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Ignoring unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class Migrator:
    """Upgrades legacy ``~/.ccman`` layouts into per-tool stores."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self.config_manager = config_manager or ConfigManager()
        self.ccman_dir = self.config_manager.config_dir

    @property
    def legacy_config_path(self) -> Path:
        return self.ccman_dir / LEGACY_CONFIG_NAME

    @property
    def legacy_backup_path(self) -> Path:
        return self.ccman_dir / LEGACY_BACKUP_NAME

    # ---- v1 -> v2 ----

    def migrate_v1_to_v2(self) -> MigrationResult:
        """把混合的 providers 数组拆分为 codex.json / claude.json"""
        if not self.legacy_config_path.exists():
            return MigrationResult(True, "No migration needed: old config file not found")
        if any(self.config_manager.store_exists(tool) for tool in V1_TOOLS):
            return MigrationResult(True, "Migration already completed")

        try:
            old = _load_json(self.legacy_config_path)
            if not isinstance(old, dict) or not isinstance(old.get("providers"), list):
                return MigrationResult(True, "No migration needed: not a v1 config")

            current = old.get("currentProviders") or {}
            stores: Dict[str, ProviderStore] = {}
            for tool in V1_TOOLS:
                providers = [
                    {k: v for k, v in p.items() if k != "type"}
                    for p in old["providers"]
                    if isinstance(p, dict) and p.get("type") == tool
                ]
                current_id = current.get(tool)
                if current_id is not None and not any(p.get("id") == current_id for p in providers):
                    logger.warning("Dropping dangling current %s provider %s", tool, current_id)
                    current_id = None
                stores[tool] = parse_store(
                    {"currentProviderId": current_id, "providers": providers},
                    f"{self.legacy_config_path} ({tool})",
                )

            for tool, store in stores.items():
                self.config_manager.save_store(tool, store)
            self.legacy_config_path.rename(self.legacy_backup_path)
        except (CcmanError, OSError) as e:
            logger.error("v1 migration failed: %s", e)
            return MigrationResult(False, f"Migration failed: {e}")

        logger.info("Migrated v1 config, backup at %s", self.legacy_backup_path)
        return MigrationResult(True, "Migration completed successfully", {
            "codexProviders": len(stores["codex"].providers),
            "claudeProviders": len(stores["claude"].providers),
            "backupPath": str(self.legacy_backup_path),
        })

    def rollback_migration(self) -> MigrationResult:
        """恢复 config.json.bak 并删除拆分出的 store"""
        if not self.legacy_backup_path.exists():
            return MigrationResult(False, "Backup file not found, cannot rollback")
        try:
            self.legacy_backup_path.replace(self.legacy_config_path)
            for tool in V1_TOOLS:
                store_path = self.config_manager.store_path(tool)
                if store_path.exists():
                    store_path.unlink()
        except OSError as e:
            return MigrationResult(False, f"Rollback failed: {e}")
        logger.info("Rolled back v1 migration")
        return MigrationResult(True, "Rollback completed successfully")

    # ---- v2 -> v3 ----

    def _read_v2_provider(self, path: Path) -> Optional[Dict[str, Any]]:
        try:
            detail = _load_json(path)
        except ParseError as e:
            logger.warning("Skipping %s: %s", path.name, e)
            return None
        env = ((detail.get("config") or {}).get("env") or {}) if isinstance(detail, dict) else {}
        if not isinstance(env, dict):
            return None
        base_url, api_key = env.get("ANTHROPIC_BASE_URL"), env.get("ANTHROPIC_AUTH_TOKEN")
        if not base_url or not api_key:
            return None
        created_at = parse_iso_timestamp((detail.get("metadata") or {}).get("createdAt")) or now_ms()
        return {
            "id": f"claude-{created_at}-{uuid.uuid4().hex[:6]}",
            "name": detail.get("name") or path.stem,
            "baseUrl": base_url,
            "apiKey": api_key,
            "createdAt": created_at,
        }

    def migrate_v2_to_v3(self) -> MigrationResult:
        """config.json + providers/*.json -> claude.json"""
        providers_dir = self.ccman_dir / V2_PROVIDERS_DIR
        if not self.legacy_config_path.exists():
            return MigrationResult(True, "No migration needed: old config file not found")
        try:
            index = _load_json(self.legacy_config_path)
        except ParseError as e:
            return MigrationResult(False, f"Migration failed: {e}")
        entries = index.get("providers") if isinstance(index, dict) else None
        if not isinstance(entries, dict):
            return MigrationResult(True, "No migration needed: not a v2 config")
        if not providers_dir.is_dir():
            return MigrationResult(False, "providers directory not found, the old config may be corrupted")
        if self.config_manager.store_exists("claude"):
            return MigrationResult(True, "New config already exists, no migration needed")

        try:
            migrated: List[Dict[str, Any]] = []
            skipped: List[str] = []
            current_id = None
            for key, meta in entries.items():
                if not isinstance(meta, dict):
                    meta = {}
                config_file = meta.get("configFile") or f"{key}.json"
                provider_path = providers_dir / config_file
                record = self._read_v2_provider(provider_path) if provider_path.exists() else None
                if record is None:
                    logger.warning("Skipping %s", config_file)
                    skipped.append(config_file)
                    continue
                last_used = parse_iso_timestamp(meta.get("lastUsed"))
                if last_used is not None:
                    record["lastUsedAt"] = last_used
                migrated.append(record)
                if index.get("currentProvider") == key:
                    current_id = record["id"]

            # 最近使用的排前面，从未使用的排最后
            migrated.sort(key=lambda p: (p.get("lastUsedAt") is None, -(p.get("lastUsedAt") or 0)))
            store = parse_store({"currentProviderId": current_id, "providers": migrated},
                                str(self.legacy_config_path))
            self.config_manager.save_store("claude", store)
        except (CcmanError, OSError) as e:
            logger.error("v2 migration failed: %s", e)
            return MigrationResult(False, f"Migration failed: {e}")

        logger.info("Migrated %d v2 providers", len(migrated))
        details: Dict[str, Any] = {"migratedProviders": len(migrated), "currentProvider": current_id}
        if skipped:
            details["skippedFiles"] = skipped
        return MigrationResult(True, f"Migrated {len(migrated)} providers", details)

    def validate_migration(self) -> MigrationResult:
        """检查迁移生成的 claude.json"""
        path = self.config_manager.store_path("claude")
        if not path.exists():
            return MigrationResult(False, "New config file does not exist")
        try:
            data = _load_json(path)
        except ParseError as e:
            return MigrationResult(False, f"Validation failed: {e}")

        providers = data.get("providers") if isinstance(data, dict) else None
        if not isinstance(providers, list):
            return MigrationResult(False, "Invalid config format", {"missingFields": ["providers (must be array)"]})

        missing = [
            f"providers[{index}].{name}"
            for index, provider in enumerate(providers)
            for name in REQUIRED_PROVIDER_FIELDS
            if not (isinstance(provider, dict) and provider.get(name))
        ]
        if missing:
            return MigrationResult(False, "Invalid config format",
                                   {"providersCount": len(providers), "missingFields": missing})

        current_id = data.get("currentProviderId")
        current = next((p for p in providers if p["id"] == current_id), None)
        if current_id and current is None:
            return MigrationResult(False, "Current provider is not in the providers list",
                                   {"providersCount": len(providers), "currentProvider": current_id})
        return MigrationResult(True, "Config is valid", {
            "providersCount": len(providers),
            "currentProvider": current["name"] if current else None,
        })

    def run_all(self) -> List[MigrationResult]:
        """按版本顺序执行全部迁移"""
        return [self.migrate_v1_to_v2(), self.migrate_v2_to_v3()]


def run_all_migrations(config_manager: Optional[ConfigManager] = None) -> Dict[str, Any]:
    results = Migrator(config_manager).run_all()
    labels = ("v1→v2", "v2→v3")
    return {
        "success": all(r.success for r in results),
        "messages": [f"[{label}] {r.message}" for label, r in zip(labels, results)],
    }


def migrate_v1_to_v2(config_manager: Optional[ConfigManager] = None) -> MigrationResult:
    return Migrator(config_manager).migrate_v1_to_v2()


def migrate_v2_to_v3(config_manager: Optional[ConfigManager] = None) -> MigrationResult:
    return Migrator(config_manager).migrate_v2_to_v3()


def rollback_migration(config_manager: Optional[ConfigManager] = None) -> MigrationResult:
    return Migrator(config_manager).rollback_migration()


def validate_migration(config_manager: Optional[ConfigManager] = None) -> MigrationResult:
    return Migrator(config_manager).validate_migration()
