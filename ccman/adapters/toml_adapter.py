"""TOML 适配器

基于 tomlkit，写入时在原文档上就地修改，未改动的键、注释和格式保持不变。
"""

from collections.abc import Mapping, MutableMapping
from typing import Any, Dict, Optional

import tomlkit
from tomlkit.exceptions import TOMLKitError

from ..errors import ParseError
from .base_adapter import BaseConfigAdapter, DocumentFormat


def _unwrap(value: Any) -> Any:
    return value.unwrap() if hasattr(value, "unwrap") else value


def _sync_container(container: MutableMapping, data: Mapping) -> None:
    """Make ``container`` equal to ``data`` while touching as little as possible."""
    for key in list(container.keys()):
        if key not in data:
            del container[key]

    for key, value in data.items():
        if key in container:
            current = container[key]
            if isinstance(value, Mapping) and isinstance(current, MutableMapping):
                _sync_container(current, value)
                continue
            if _unwrap(current) == value:
                continue
        container[key] = value


class TomlAdapter(BaseConfigAdapter):
    format = DocumentFormat.TOML

    def parse(self, text: str) -> Dict[str, Any]:
        try:
            return tomlkit.parse(text).unwrap()
        except TOMLKitError as e:
            raise ParseError(f"invalid TOML: {e}") from e

    def serialize(self, data: Mapping[str, Any], existing_text: Optional[str] = None) -> str:
        doc = tomlkit.document()
        if existing_text and existing_text.strip():
            try:
                doc = tomlkit.parse(existing_text)
            except TOMLKitError:
                doc = tomlkit.document()
        _sync_container(doc, data)
        return tomlkit.dumps(doc)
