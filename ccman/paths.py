"""路径解析

所有路径在调用时计算，测试可以通过 HOME / CCMAN_ROOT 重定向。
"""

import os
from pathlib import Path


def get_root_dir() -> Path:
    root = os.environ.get("CCMAN_ROOT")
    if root:
        return Path(root).expanduser()
    return Path.home()


def get_ccman_dir() -> Path:
    return get_root_dir() / ".ccman"


def get_store_path(tool: str) -> Path:
    return get_ccman_dir() / f"{tool}.json"


def get_mcp_store_path() -> Path:
    return get_ccman_dir() / "mcp.json"


def get_global_config_path() -> Path:
    return get_ccman_dir() / "config.yaml"


def get_codex_dir() -> Path:
    return get_root_dir() / ".codex"


def get_claude_dir() -> Path:
    return get_root_dir() / ".claude"


def get_claude_json_path() -> Path:
    return get_root_dir() / ".claude.json"


def get_gemini_dir() -> Path:
    return get_root_dir() / ".gemini"


def get_opencode_config_path() -> Path:
    return get_root_dir() / ".config" / "opencode" / "opencode.json"


def get_openclaw_dir() -> Path:
    return get_root_dir() / ".openclaw"


def get_openclaw_models_path() -> Path:
    return get_openclaw_dir() / "agents" / "main" / "agent" / "models.json"


def remote_store_path(remote_dir: str, tool: str) -> str:
    """远程 blob 路径: {remoteDir}/.ccman/{tool}.json"""
    base = "/" + remote_dir.strip("/") if remote_dir and remote_dir.strip("/") else ""
    return f"{base}/.ccman/{tool}.json"
