import re
from datetime import datetime
from typing import List, Optional


def is_valid_url(url: str) -> bool:
    """验证URL是否有效"""
    if not url:
        return False

    url_pattern = re.compile(
        r"^https?://"  # http:// or https://
        r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,63}\.?|"  # domain...
        r"localhost|"  # localhost...
        r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
        r"(?::\d+)?"  # optional port
        r"(?:/?|[/?]\S+)$",
        re.IGNORECASE,
    )

    return url_pattern.match(url) is not None


def normalize_url(url: str) -> str:
    """规范化URL格式，空字符串保持为空"""
    url = url.strip()
    if not url:
        return url

    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    return url.rstrip("/")


def mask_sensitive_value(value: Optional[str], mask_char: str = "*") -> str:
    """遮盖敏感信息"""
    if not value:
        return ""
    if len(value) <= 8:
        return mask_char * len(value)

    visible_chars = 4
    return (
        value[:visible_chars]
        + mask_char * (len(value) - visible_chars * 2)
        + value[-visible_chars:]
    )


def format_timestamp(ms: Optional[int]) -> str:
    """Unix 毫秒时间戳 -> 本地时间字符串"""
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def human_readable_size(size_bytes: int) -> str:
    """将字节数转换为人类可读的格式"""
    if size_bytes == 0:
        return "0B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    size = float(size_bytes)
    while size >= 1024.0 and i < len(size_names) - 1:
        size /= 1024.0
        i += 1

    return f"{size:.1f}{size_names[i]}"


def format_table(headers: List[str], rows: List[List[str]], min_width: int = 6) -> str:
    """格式化表格显示"""
    if not rows:
        return ""

    col_widths = [max(len(str(header)), min_width) for header in headers]

    for row in rows:
        for i, cell in enumerate(row):
            if i < len(col_widths):
                col_widths[i] = max(col_widths[i], len(str(cell)))

    header_line = " | ".join(
        header.ljust(col_widths[i]) for i, header in enumerate(headers)
    )
    separator_line = "-+-".join("-" * width for width in col_widths)

    lines = [header_line, separator_line]

    for row in rows:
        formatted_row = []
        for i, cell in enumerate(row):
            if i < len(col_widths):
                formatted_row.append(str(cell).ljust(col_widths[i]))
        lines.append(" | ".join(formatted_row))

    return "\n".join(lines)
