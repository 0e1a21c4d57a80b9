"""服务商列表合并

规则：
1. 相同 id：lastModified 新者胜；时间相同但内容不同时远程胜
2. 不同 id 但 (baseUrl, apiKey) 相同：视为同一配置，保留 lastModified 新者
3. 全新记录：名称冲突时追加 _2、_3 ... 后缀
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from ..config import ProviderRecord

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    merged: List[ProviderRecord]
    has_changes: bool
    # 被折叠掉的记录 id -> 保留下来的记录 id
    replaced_ids: Dict[str, str] = field(default_factory=dict)


def last_modified(provider: ProviderRecord) -> int:
    if provider.last_modified is not None:
        return provider.last_modified
    return provider.created_at


def is_provider_equal(a: ProviderRecord, b: ProviderRecord) -> bool:
    return (
        a.id == b.id
        and a.name == b.name
        and a.base_url == b.base_url
        and a.api_key == b.api_key
    )


def providers_equal(a: Sequence[ProviderRecord], b: Sequence[ProviderRecord]) -> bool:
    """两个列表按 id 集合比较（忽略顺序）"""
    if len(a) != len(b):
        return False
    by_id = {p.id: p for p in b}
    return all(p.id in by_id and is_provider_equal(p, by_id[p.id]) for p in a)


def resolve_name_conflict(name: str, taken: Iterable[str]) -> str:
    """Return ``name`` or the first free ``name_N`` (N >= 2).

    Comparison is case-insensitive, matching the store's own name check.
    """
    taken_lower = {t.lower() for t in taken}
    if name.lower() not in taken_lower:
        return name
    suffix = 2
    while f"{name}_{suffix}".lower() in taken_lower:
        suffix += 1
    return f"{name}_{suffix}"


def _names_except(result: Dict[str, ProviderRecord], *excluded_ids: Optional[str]) -> List[str]:
    return [p.name for pid, p in result.items() if pid not in excluded_ids]


def _with_unique_name(provider: ProviderRecord, result: Dict[str, ProviderRecord],
                      *excluded_ids: Optional[str]) -> ProviderRecord:
    unique = resolve_name_conflict(provider.name, _names_except(result, *excluded_ids))
    if unique != provider.name:
        logger.info("Renamed provider %s from %r to %r to avoid a name clash", provider.id, provider.name, unique)
        return provider.model_copy(update={"name": unique})
    return provider


def merge_providers(local: Sequence[ProviderRecord], remote: Sequence[ProviderRecord]) -> MergeResult:
    """Reconcile local and remote provider lists.

    Pure function: inputs are not mutated.
    """
    if not local or not remote:
        survivors = list(local) or list(remote)
        return MergeResult(merged=survivors, has_changes=bool(survivors))

    result: Dict[str, ProviderRecord] = {p.id: p for p in local}
    replaced_ids: Dict[str, str] = {}
    has_changes = False

    for incoming in remote:
        existing = result.get(incoming.id)
        if existing is not None:
            remote_time, local_time = last_modified(incoming), last_modified(existing)
            if remote_time > local_time or (remote_time == local_time and not is_provider_equal(existing, incoming)):
                logger.debug("Provider %s: remote version wins", incoming.id)
                result[incoming.id] = _with_unique_name(incoming, result, incoming.id)
                has_changes = True
            continue

        twin = next(
            (p for p in result.values() if p.base_url == incoming.base_url and p.api_key == incoming.api_key),
            None,
        )
        if twin is not None:
            # 时间相同也以远程为准（id 不同）
            if last_modified(incoming) >= last_modified(twin):
                logger.debug("Provider %s replaces same-config provider %s", incoming.id, twin.id)
                # 保持原位置
                result = {
                    (incoming.id if pid == twin.id else pid): (
                        _with_unique_name(incoming, result, twin.id) if pid == twin.id else p
                    )
                    for pid, p in result.items()
                }
                replaced_ids[twin.id] = incoming.id
                has_changes = True
            else:
                logger.debug("Provider %s dropped, same config as local %s", incoming.id, twin.id)
            continue

        result[incoming.id] = _with_unique_name(incoming, result)
        logger.debug("Provider %s added from remote", incoming.id)
        has_changes = True

    return MergeResult(merged=list(result.values()), has_changes=has_changes, replaced_ids=replaced_ids)
