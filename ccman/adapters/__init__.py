from .base_adapter import (
    BaseConfigAdapter,
    ConfigDocument,
    DocumentFormat,
    MergeMode,
    deep_merge,
)
from .env_adapter import EnvAdapter, parse_env, serialize_env
from .json_adapter import JsonAdapter
from .toml_adapter import TomlAdapter

ADAPTERS = {
    DocumentFormat.JSON: JsonAdapter,
    DocumentFormat.TOML: TomlAdapter,
    DocumentFormat.ENV: EnvAdapter,
}


def get_adapter(fmt: DocumentFormat) -> BaseConfigAdapter:
    return ADAPTERS[DocumentFormat(fmt)]()


__all__ = [
    "BaseConfigAdapter",
    "ConfigDocument",
    "DocumentFormat",
    "MergeMode",
    "deep_merge",
    "EnvAdapter",
    "JsonAdapter",
    "TomlAdapter",
    "parse_env",
    "serialize_env",
    "get_adapter",
]
