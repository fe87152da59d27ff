"""Schema provider: request validation, JSON schema and hint text per model.

The rest of the core only sees ``ModelSchema``; which library backs the
validation (pydantic here) stays behind this module.
"""

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from mediagen.errors import ValidationError

# Keys the structured-output backend rejects in a response schema
_UNSUPPORTED_KEYS = {"title", "default", "additionalProperties", "$defs", "examples", "const"}

# Numeric fields that structured output returns as strings when declared as enums
NUMERIC_ENUM_FIELDS = {"durationSeconds", "sampleCount", "seed", "candidateCount"}


@dataclass(frozen=True)
class ModelSchema:
    model_id: str
    request_model: Type[BaseModel]
    hints: str = ""

    def validate(self, payload: Any) -> Dict[str, Any]:
        """Validate ``payload`` and return it normalised with defaults applied.

        Raises ``ValidationError`` on failure.
        """
        try:
            parsed = self.request_model.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(self.model_id, exc) from exc
        return parsed.model_dump(mode="json", exclude_none=True)

    def to_json_schema(self) -> Dict[str, Any]:
        return self.request_model.model_json_schema()

    def to_response_schema(self) -> Dict[str, Any]:
        """JSON schema reshaped for a structured-output backend."""
        return to_response_schema(self.to_json_schema())

    def to_hint_text(self) -> str:
        schema_json = json.dumps(self.to_json_schema(), indent=2)
        return f"{self.hints.strip()}\n\n**Request JSON schema:**\n```json\n{schema_json}\n```"


def to_response_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Inline ``$ref``s and rewrite constructs the backend does not accept.

    - ``anyOf`` with a ``null`` branch becomes the other branch plus ``nullable``
    - ``const`` becomes a single-value ``enum``
    - enums are emitted as strings
    """
    defs = schema.get("$defs", {})

    def resolve(node: Any) -> Any:
        if isinstance(node, list):
            return [resolve(item) for item in node]
        if not isinstance(node, dict):
            return node

        if "$ref" in node:
            name = node["$ref"].rsplit("/", 1)[-1]
            merged = {**copy.deepcopy(defs[name]), **{k: v for k, v in node.items() if k != "$ref"}}
            return resolve(merged)

        node = dict(node)
        if "anyOf" in node:
            branches = [b for b in node["anyOf"] if b.get("type") != "null"]
            nullable = len(branches) != len(node["anyOf"])
            if len(branches) == 1:
                rest = {k: v for k, v in node.items() if k != "anyOf"}
                node = {**branches[0], **rest}
                if nullable:
                    node["nullable"] = True
                if "$ref" in node:
                    return resolve(node)
            else:
                node["anyOf"] = branches

        if "const" in node:
            node["enum"] = [node["const"]]
        if "enum" in node:
            node["enum"] = [str(v) for v in node["enum"]]
            node["type"] = "string"

        out: Dict[str, Any] = {}
        for key, value in node.items():
            if key in _UNSUPPORTED_KEYS:
                continue
            if key == "properties":
                out[key] = {name: resolve(prop) for name, prop in value.items()}
            else:
                out[key] = resolve(value)
        return out

    return resolve(schema)


def coerce_numeric_enums(value: Any) -> Any:
    """Convert string values of known numeric enum fields back to numbers."""
    if isinstance(value, list):
        return [coerce_numeric_enums(v) for v in value]
    if not isinstance(value, dict):
        return value
    result: Dict[str, Any] = {}
    for key, item in value.items():
        if key in NUMERIC_ENUM_FIELDS and isinstance(item, str):
            try:
                number = float(item)
            except ValueError:
                result[key] = item
            else:
                result[key] = int(number) if number.is_integer() else number
        else:
            result[key] = coerce_numeric_enums(item)
    return result
