"""GMN 一键配置：为多个工具写入同一个 API Key"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .errors import CcmanError, ValidationFailed
from .provider import ProviderManager

logger = logging.getLogger(__name__)

PROVIDER_NAME = "GMN"

GMN_PLATFORMS = ("claude", "codex", "gemini", "opencode")
DEFAULT_PLATFORMS = ("codex", "opencode")

GMN_BASE_URLS = {
    "claude": "https://gmn.chuangzuoli.cn/api",
    "gemini": "https://gmn.chuangzuoli.cn/gemini",
}
# Codex / OpenCode 走 OpenAI 兼容接口
GMN_OPENAI_BASE_URLS = {
    "cn": "https://gmn.chuangzuoli.cn/openai",
    "com": "https://gmn.chuangzuoli.com",
}


@dataclass
class GmnResult:
    configured: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


def parse_platforms(value: Optional[str]) -> List[str]:
    """'codex,claude' / 'all' -> 平台列表；为空时返回默认平台"""
    if value is None or not value.strip():
        return list(DEFAULT_PLATFORMS)
    if value.strip().lower() == "all":
        return list(GMN_PLATFORMS)

    platforms = []
    for item in value.split(","):
        platform = item.strip().lower()
        if not platform:
            continue
        if platform not in GMN_PLATFORMS:
            raise ValidationFailed(f"Invalid platform: {platform}. Valid: {', '.join(GMN_PLATFORMS)}, all")
        if platform not in platforms:
            platforms.append(platform)
    if not platforms:
        raise ValidationFailed("At least one platform is required")
    return platforms


def platform_base_urls(domain: str = "cn") -> Dict[str, str]:
    domain = domain.strip().lower()
    if domain not in GMN_OPENAI_BASE_URLS:
        raise ValidationFailed(f"Invalid domain: {domain} (choose cn or com)")
    openai_url = GMN_OPENAI_BASE_URLS[domain]
    return {**GMN_BASE_URLS, "codex": openai_url, "opencode": openai_url}


def setup_gmn(api_key: str, platforms: Sequence[str] = DEFAULT_PLATFORMS, domain: str = "cn") -> GmnResult:
    """为每个平台添加或更新 GMN 服务商并切换过去

    单个平台失败时记录错误并继续处理其余平台。
    """
    api_key = (api_key or "").strip()
    if not api_key:
        raise ValidationFailed("API key must not be empty")
    base_urls = platform_base_urls(domain)

    result = GmnResult()
    for platform in platforms:
        manager = ProviderManager(platform)
        try:
            existing = manager.find_by_name(PROVIDER_NAME)
            if existing is not None:
                provider = manager.edit(existing.id, base_url=base_urls[platform], api_key=api_key)
            else:
                provider = manager.add(PROVIDER_NAME, base_urls[platform], api_key)
            manager.switch(provider.id)
        except (CcmanError, OSError) as e:
            logger.error("GMN setup failed for %s: %s", platform, e)
            result.errors[platform] = str(e)
            continue
        logger.info("GMN configured for %s", platform)
        result.configured.append(platform)
    return result
