"""~/.claude.json 清理

Claude Code 把每个项目的对话历史、更新日志缓存和使用统计都存进 ~/.claude.json，
长期使用后文件会膨胀。这里提供分析和按预设清理。
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ParseError, ProviderNotFound, ValidationFailed
from .fileio import atomic_write_text, file_lock, read_text
from .paths import get_claude_json_path

logger = logging.getLogger(__name__)


@dataclass
class CleanOptions:
    keep_recent: Optional[int] = None
    clean_cache: bool = False
    clean_stats: bool = False


CLEAN_PRESETS: Dict[str, CleanOptions] = {
    "conservative": CleanOptions(keep_recent=10),
    "moderate": CleanOptions(keep_recent=5, clean_cache=True, clean_stats=True),
    "aggressive": CleanOptions(keep_recent=0, clean_cache=True, clean_stats=True),
}


@dataclass
class ProjectHistory:
    path: str
    count: int
    size: int


@dataclass
class AnalyzeResult:
    file_size: int
    projects: List[ProjectHistory] = field(default_factory=list)
    cache_size: int = 0
    estimated_savings: Dict[str, int] = field(default_factory=dict)

    @property
    def total_history(self) -> int:
        return sum(p.count for p in self.projects)


@dataclass
class CleanResult:
    size_before: int
    size_after: int
    cleaned_items: Dict[str, int]
    backup_path: Optional[Path] = None

    @property
    def saved(self) -> int:
        return self.size_before - self.size_after


def _size(value: Any) -> int:
    return len(json.dumps(value, ensure_ascii=False).encode("utf-8"))


def _load(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ValidationFailed(f"{path} does not exist")
    try:
        data = json.loads(read_text(path))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"{path}: invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationFailed(f"{path}: expected an object")
    return data


def _write(path: Path, data: Dict[str, Any]) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False))


def apply_clean(data: Dict[str, Any], options: CleanOptions) -> Dict[str, int]:
    """就地清理，返回各类清理数量"""
    cleaned = {"history": 0, "cache": 0, "stats": 0}

    if options.keep_recent is not None:
        for project in (data.get("projects") or {}).values():
            history = project.get("history") if isinstance(project, dict) else None
            if isinstance(history, list) and len(history) > options.keep_recent:
                cleaned["history"] += len(history) - options.keep_recent
                # 保留末尾最近的 N 条
                project["history"] = history[len(history) - options.keep_recent:]

    if options.clean_cache and "cachedChangelog" in data:
        del data["cachedChangelog"]
        data["changelogLastFetched"] = 0
        cleaned["cache"] = 1

    if options.clean_stats:
        data["numStartups"] = 0
        data["promptQueueUseCount"] = 0
        data["tipsHistory"] = {}
        cleaned["stats"] = 1

    return cleaned


def analyze_claude_json(path: Optional[Path] = None) -> AnalyzeResult:
    path = Path(path) if path else get_claude_json_path()
    data = _load(path)

    projects = []
    for project_path, project in (data.get("projects") or {}).items():
        history = project.get("history") if isinstance(project, dict) else None
        if isinstance(history, list):
            projects.append(ProjectHistory(project_path, len(history), _size(history)))
    projects.sort(key=lambda p: p.count, reverse=True)

    result = AnalyzeResult(
        file_size=path.stat().st_size,
        projects=projects,
        cache_size=_size(data["cachedChangelog"]) if "cachedChangelog" in data else 0,
    )
    for preset, options in CLEAN_PRESETS.items():
        trial = json.loads(json.dumps(data))
        apply_clean(trial, options)
        result.estimated_savings[preset] = max(0, _size(data) - _size(trial))
    return result


def clean_claude_json(options: CleanOptions, path: Optional[Path] = None, backup: bool = True) -> CleanResult:
    """清理前先备份为 .claude.json.backup-<时间>"""
    path = Path(path) if path else get_claude_json_path()
    with file_lock(path):
        size_before = path.stat().st_size if path.exists() else 0
        data = _load(path)

        backup_path = None
        if backup:
            backup_path = path.with_name(f"{path.name}.backup-{datetime.now().strftime('%Y%m%d-%H%M%S')}")
            atomic_write_text(backup_path, read_text(path))

        cleaned = apply_clean(data, options)
        _write(path, data)

    logger.info("Cleaned %s: %s", path, cleaned)
    return CleanResult(size_before, path.stat().st_size, cleaned, backup_path)


def clear_project_history(project_path: str, path: Optional[Path] = None) -> int:
    """清空单个项目的历史，返回删除条数"""
    path = Path(path) if path else get_claude_json_path()
    with file_lock(path):
        data = _load(path)
        project = (data.get("projects") or {}).get(project_path)
        if not isinstance(project, dict):
            raise ProviderNotFound(f"Project '{project_path}' not found in {path.name}")
        removed = len(project.get("history") or [])
        project["history"] = []
        _write(path, data)
    return removed
