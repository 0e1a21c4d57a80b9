"""模板渲染：替换文档中字符串值里的 {{var}} 占位符"""

import re
from typing import Any, Mapping, Optional

PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render_string(text: str, variables: Mapping[str, Optional[str]]) -> str:
    return PLACEHOLDER_RE.sub(lambda m: str(variables.get(m.group(1)) or ""), text)


def render_template(template: Any, variables: Mapping[str, Optional[str]]) -> Any:
    """Return a copy of ``template`` with placeholders filled in.

    Unknown placeholders render as the empty string; non-string leaves are
    copied unchanged.
    """
    if isinstance(template, Mapping):
        return {key: render_template(value, variables) for key, value in template.items()}
    if isinstance(template, list):
        return [render_template(item, variables) for item in template]
    if isinstance(template, str):
        return render_string(template, variables)
    return template
