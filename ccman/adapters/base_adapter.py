"""配置格式适配器基类"""

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from ..errors import ParseError, ValidationFailed
from ..fileio import atomic_write_text, read_text

logger = logging.getLogger(__name__)


class MergeMode(str, Enum):
    # 已有值优先：模板只补充缺失字段，不覆盖用户自定义
    OLD_OVERRIDE_NEW = "old-override-new"
    # 新值优先：托管字段（如认证信息）强制写入
    NEW_OVERRIDE_OLD = "new-override-old"


class DocumentFormat(str, Enum):
    JSON = "json"
    TOML = "toml"
    ENV = "env"


@dataclass
class ConfigDocument:
    """A parsed config file tagged with its on-disk format."""
    format: DocumentFormat
    data: Dict[str, Any] = field(default_factory=dict)


def _is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any],
               mode: MergeMode = MergeMode.OLD_OVERRIDE_NEW) -> Dict[str, Any]:
    """Deep-merge ``override`` into ``base`` and return a new dict.

    Nested maps merge key by key; lists and scalars are atomic and come from
    whichever side wins at that key. Existing key order is kept, new keys are
    appended. Under ``NEW_OVERRIDE_OLD`` an override value of ``None`` removes
    the key.
    """
    mode = MergeMode(mode)
    result: Dict[str, Any] = {}
    for key, value in base.items():
        result[key] = _plain_copy(value)

    for key, new_value in override.items():
        if key not in result:
            if _is_mapping(new_value):
                result[key] = deep_merge({}, new_value, mode)
            elif new_value is not None:
                result[key] = _plain_copy(new_value)
            continue

        old_value = result[key]
        if _is_mapping(old_value) and _is_mapping(new_value):
            result[key] = deep_merge(old_value, new_value, mode)
        elif mode is MergeMode.NEW_OVERRIDE_OLD:
            if new_value is None:
                del result[key]
            else:
                result[key] = _plain_copy(new_value)

    return result


def _plain_copy(value: Any) -> Any:
    if _is_mapping(value):
        return {k: _plain_copy(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain_copy(v) for v in value]
    return copy.deepcopy(value)


class BaseConfigAdapter(ABC):
    """Read/merge/write/validate one on-disk config format."""

    format: DocumentFormat

    @abstractmethod
    def parse(self, text: str) -> Dict[str, Any]:
        """文本 -> 文档，格式错误时抛出 ParseError"""

    @abstractmethod
    def serialize(self, data: Mapping[str, Any], existing_text: Optional[str] = None) -> str:
        """文档 -> 文本"""

    def validate(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            raise ValidationFailed(f"{self.format.value} config must be an object, got {type(data).__name__}")

    def merge(self, base: Mapping[str, Any], override: Mapping[str, Any],
              mode: MergeMode = MergeMode.OLD_OVERRIDE_NEW) -> Dict[str, Any]:
        return deep_merge(base, override, mode)

    def read_document(self, path: Path) -> ConfigDocument:
        return ConfigDocument(format=self.format, data=self.read(path))

    def _load(self, path: Path) -> Tuple[Optional[str], Dict[str, Any]]:
        """返回 (原始文本, 解析结果)；文件不存在时文本为 None"""
        if not path.exists():
            return None, {}
        try:
            text = read_text(path)
        except UnicodeDecodeError as e:
            raise ParseError(f"{path}: not valid UTF-8: {e}") from e
        if not text.strip():
            return text, {}
        try:
            return text, self.parse(text)
        except ParseError as e:
            raise ParseError(f"{path}: {e}") from e

    def read(self, path: Path) -> Dict[str, Any]:
        return self._load(Path(path))[1]

    def write(self, path: Path, data: Mapping[str, Any],
              mode: MergeMode = MergeMode.OLD_OVERRIDE_NEW) -> Dict[str, Any]:
        return self.update(path, [(data, mode)])

    def update(self, path: Path, layers: Iterable[Tuple[Mapping[str, Any], MergeMode]]) -> Dict[str, Any]:
        """Apply several ``(document, mode)`` layers in order, then write once."""
        path = Path(path)
        existing_text, merged = self._load(path)
        for data, mode in layers:
            merged = self.merge(merged, data, mode)
        self.validate(merged)
        atomic_write_text(path, self.serialize(merged, existing_text))
        logger.debug("Wrote %s config %s", self.format.value, path)
        return merged

    def replace(self, path: Path, data: Mapping[str, Any]) -> Dict[str, Any]:
        """整体替换文件内容（不合并）"""
        self.validate(data)
        atomic_write_text(Path(path), self.serialize(data))
        return dict(data)
