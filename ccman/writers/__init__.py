"""各工具的原生配置写入器

每个写入器接收一个服务商记录和 ConfigService，把服务商写进对应工具的配置文件。
"""

import json
from typing import Any, Dict, Optional

from ..config import ProviderRecord


def provider_variables(provider: ProviderRecord) -> Dict[str, str]:
    return {
        "name": provider.name,
        "baseUrl": provider.base_url,
        "apiKey": provider.api_key,
        "model": provider.model or "",
    }


def parse_model_meta(model: Optional[str]) -> Optional[Dict[str, Any]]:
    """model 字段可能是 JSON 编码的元数据，解析失败则视为普通模型名"""
    if not model or not model.strip().startswith("{"):
        return None
    try:
        meta = json.loads(model)
    except json.JSONDecodeError:
        return None
    return meta if isinstance(meta, dict) else None
