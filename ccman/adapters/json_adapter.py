import json
from typing import Any, Dict, Mapping, Optional

from ..errors import ParseError
from .base_adapter import BaseConfigAdapter, DocumentFormat


class JsonAdapter(BaseConfigAdapter):
    format = DocumentFormat.JSON

    def __init__(self, indent: int = 2):
        self.indent = indent

    def parse(self, text: str) -> Dict[str, Any]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ParseError(f"expected a JSON object, got {type(data).__name__}")
        return data

    def serialize(self, data: Mapping[str, Any], existing_text: Optional[str] = None) -> str:
        return json.dumps(data, indent=self.indent, ensure_ascii=False) + "\n"
