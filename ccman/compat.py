"""旧版 API 兼容层

旧代码按 createCodexManager() / createClaudeManager() 的方式使用，
方法名为 camelCase。每个工具只提示一次弃用，已提示的集合由调用方持有的
DeprecationNotices 管理。
"""

import logging
from typing import Any, List, Optional, Set

from .config import ProviderRecord
from .provider import ProviderManager

logger = logging.getLogger(__name__)


class DeprecationNotices:
    """Remembers which deprecation warnings were already emitted."""

    def __init__(self):
        self.warned: Set[str] = set()

    def warn_once(self, key: str, message: str) -> bool:
        if key in self.warned:
            return False
        self.warned.add(key)
        logger.warning(message)
        return True

    def reset(self) -> None:
        self.warned.clear()


class LegacyToolManager:
    def __init__(self, tool: str, notices: DeprecationNotices, manager: Optional[ProviderManager] = None):
        self.tool = tool
        self.notices = notices
        self.manager = manager or ProviderManager(tool)

    def _warn(self) -> None:
        self.notices.warn_once(
            self.tool,
            f"The legacy {self.tool} manager API is deprecated, use ProviderManager('{self.tool}') instead",
        )

    def add(self, input: dict) -> ProviderRecord:
        self._warn()
        return self.manager.add(
            name=input["name"],
            base_url=input.get("baseUrl", ""),
            api_key=input.get("apiKey", ""),
            model=input.get("model"),
            desc=input.get("desc"),
        )

    def list(self) -> List[ProviderRecord]:
        self._warn()
        return self.manager.list()

    def get(self, provider_id: str) -> ProviderRecord:
        self._warn()
        return self.manager.get(provider_id)

    def findByName(self, name: str) -> Optional[ProviderRecord]:
        self._warn()
        return self.manager.find_by_name(name)

    def switch(self, provider_id: str) -> ProviderRecord:
        self._warn()
        return self.manager.switch(provider_id)

    def getCurrent(self) -> Optional[ProviderRecord]:
        self._warn()
        return self.manager.current()

    def edit(self, provider_id: str, updates: dict) -> ProviderRecord:
        self._warn()
        mapping = {"name": "name", "desc": "desc", "baseUrl": "base_url", "apiKey": "api_key", "model": "model"}
        fields: Any = {mapping[k]: v for k, v in updates.items() if k in mapping}
        return self.manager.edit(provider_id, **fields)

    def remove(self, provider_id: str) -> None:
        self._warn()
        self.manager.remove(provider_id)

    def clone(self, source_id: str, new_name: str) -> ProviderRecord:
        self._warn()
        return self.manager.clone(source_id, new_name)


def create_legacy_manager(tool: str, notices: DeprecationNotices) -> LegacyToolManager:
    return LegacyToolManager(tool, notices)
