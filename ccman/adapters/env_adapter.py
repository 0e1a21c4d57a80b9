""".env 适配器：KEY=VALUE 行"""

from typing import Any, Dict, Mapping, Optional

from ..errors import ValidationFailed
from .base_adapter import BaseConfigAdapter, DocumentFormat


def parse_env(text: str) -> Dict[str, str]:
    """解析 .env 内容

    跳过空行、# 注释、没有 = 或键为空的行；重复键以最后一次为准。
    """
    result: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        result[key] = value.strip()
    return result


def serialize_env(data: Mapping[str, str]) -> str:
    lines = [f"{key}={data[key]}" for key in sorted(data)]
    return "\n".join(lines) + "\n" if lines else ""


class EnvAdapter(BaseConfigAdapter):
    format = DocumentFormat.ENV

    def parse(self, text: str) -> Dict[str, Any]:
        return parse_env(text)

    def serialize(self, data: Mapping[str, Any], existing_text: Optional[str] = None) -> str:
        return serialize_env(data)

    def validate(self, data: Any) -> None:
        super().validate(data)
        for key, value in data.items():
            if not isinstance(value, str):
                raise ValidationFailed(f".env value for {key} must be a string, got {type(value).__name__}")
