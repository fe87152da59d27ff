"""The three AI steps of the request analyzer.

1. model selection   → ``{"model", "reasoning"}`` (JSON mode)
2. parameter inference → ``"<parameter>: <value> → <reason>"`` lines (text mode)
3. JSON generation   → request object constrained to the model's schema

Every call runs in deterministic mode. Any empty or unparseable response
raises ``AnalyzerStepError``; there are no retries.
"""

import json
import logging
from typing import Any, Dict, List, Protocol, Sequence

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from mediagen.analyzer.prompts import (
    STEP3_SYSTEM,
    build_step1_system,
    build_step2_system,
    format_reasoning,
)
from mediagen.errors import AnalyzerStepError, GenerationError
from mediagen.models.base import ModelAdapter
from mediagen.models.schema import ModelSchema

logger = logging.getLogger(__name__)


class AIBackend(Protocol):
    async def call(
        self,
        system_instruction: str,
        user_content: str,
        additional_context: str | None = None,
        response_schema: Dict[str, Any] | None = None,
        deterministic: bool = True,
    ) -> str:
        ...


class ModelSelection(BaseModel):
    model: str = Field(min_length=1)
    reasoning: List[str] = Field(min_length=1)


def _selection_schema(model_ids: Sequence[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "model": {"type": "string", "enum": list(model_ids)},
            "reasoning": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        },
        "required": ["model", "reasoning"],
    }


async def _call(step: int, backend: AIBackend, job_id: str, **kwargs) -> str:
    try:
        text = await backend.call(deterministic=True, **kwargs)
    except GenerationError as e:
        raise AnalyzerStepError(step, e.message, details={"cause": e.code}) from e
    if not text or not text.strip():
        raise AnalyzerStepError(step, "empty response from AI backend")
    logger.debug("[%s] step %s raw response: %.500s", job_id, step, text)
    return text


def _parse_json(step: int, text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise AnalyzerStepError(
            step, f"unparseable JSON: {e.msg}", details={"text": text[:2000]}
        ) from e


async def select_model(
    backend: AIBackend,
    tagged_prompt: str,
    adapters: Sequence[ModelAdapter],
    job_id: str,
) -> ModelSelection:
    text = await _call(
        1,
        backend,
        job_id,
        system_instruction=build_step1_system(adapters),
        user_content=tagged_prompt,
        response_schema=_selection_schema([a.model_id.value for a in adapters]),
    )
    try:
        return ModelSelection.model_validate(_parse_json(1, text))
    except PydanticValidationError as e:
        raise AnalyzerStepError(1, f"model selection output invalid: {e.error_count()} issue(s)") from e


def parse_reasoning_lines(text: str) -> List[str]:
    """Trimmed, non-empty lines."""
    return [line.strip() for line in text.splitlines() if line.strip()]


async def infer_parameters(
    backend: AIBackend,
    tagged_prompt: str,
    model_id: str,
    step1_reasoning: Sequence[str],
    schema: ModelSchema,
    job_id: str,
) -> List[str]:
    user_content = f"{tagged_prompt}\n\n{format_reasoning('Previous Reasoning', step1_reasoning)}"
    text = await _call(
        2,
        backend,
        job_id,
        system_instruction=build_step2_system(model_id, schema.to_hint_text()),
        user_content=user_content,
    )
    lines = parse_reasoning_lines(text)
    if not lines:
        raise AnalyzerStepError(2, "no reasoning lines in response")
    return lines


async def generate_json(
    backend: AIBackend,
    tagged_prompt: str,
    reasons: Sequence[str],
    schema: ModelSchema,
    job_id: str,
) -> Dict[str, Any]:
    text = await _call(
        3,
        backend,
        job_id,
        system_instruction=STEP3_SYSTEM,
        user_content=tagged_prompt,
        additional_context=format_reasoning("Reasoning Chain", reasons),
        response_schema=schema.to_response_schema(),
    )
    parsed = _parse_json(3, text)
    if not isinstance(parsed, dict):
        raise AnalyzerStepError(3, f"expected a JSON object, got {type(parsed).__name__}")
    return parsed
