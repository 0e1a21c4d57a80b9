"""内置服务商预设（只读）"""

from typing import Dict, List

from .config import PresetTemplate

BUILTIN_PRESETS: Dict[str, List[PresetTemplate]] = {
    "codex": [
        PresetTemplate(name="OpenAI Official", base_url="https://api.openai.com/v1",
                       description="OpenAI 官方 API"),
        PresetTemplate(name="88Code", base_url="https://www.88code.org/openai/v1",
                       description="88Code API 服务"),
    ],
    "claude": [
        PresetTemplate(name="Anthropic Official", base_url="https://api.anthropic.com",
                       description="Anthropic 官方 API"),
        PresetTemplate(name="GMN", base_url="https://gmn.chuangzuoli.com/api",
                       description="GMN 服务 (Claude 兼容)"),
    ],
    "gemini": [
        PresetTemplate(name="Google Gemini (API Key)", base_url="",
                       description="使用官方 Gemini API（通过 GEMINI_API_KEY 认证）"),
        PresetTemplate(name="GMN", base_url="https://gmn.chuangzuoli.cn/openai",
                       description="GMN 服务 (Gemini 兼容)"),
    ],
    "opencode": [
        PresetTemplate(name="OpenAI Official", base_url="https://api.openai.com/v1",
                       description="OpenAI 官方 API"),
    ],
    "openclaw": [
        PresetTemplate(name="OpenAI Official", base_url="https://api.openai.com/v1",
                       description="OpenAI 官方 API"),
    ],
}


def get_builtin_presets(tool: str) -> List[PresetTemplate]:
    return list(BUILTIN_PRESETS.get(tool, []))
