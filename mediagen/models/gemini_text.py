"""Gemini text generation (synchronous).

The generated text is returned inline on the job response; nothing is
written to object storage.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from mediagen.errors import BackendError
from mediagen.llm.gemini import blocked_reason, first_candidate_text
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.base import MediaKind, ModelAdapter, ModelId, ModelOutput, StartResult
from mediagen.models.schema import ModelSchema

logger = logging.getLogger(__name__)


class TextRequestBase(BaseModel):
    prompt: str = Field(min_length=1, max_length=10000)
    systemInstruction: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0, le=2)
    maxOutputTokens: Optional[int] = Field(None, gt=0)
    topP: Optional[float] = Field(None, ge=0, le=1)
    topK: Optional[int] = Field(None, gt=0)
    stopSequences: Optional[List[str]] = None


class Gemini25ProRequest(TextRequestBase):
    model: Literal["gemini-2.5-pro"]


class Gemini25FlashRequest(TextRequestBase):
    model: Literal["gemini-2.5-flash"]


class Gemini25FlashLiteRequest(TextRequestBase):
    model: Literal["gemini-2.5-flash-lite"]


class Gemini20FlashRequest(TextRequestBase):
    model: Literal["gemini-2.0-flash"]


class Gemini20FlashLiteRequest(TextRequestBase):
    model: Literal["gemini-2.0-flash-lite"]


TEXT_HINTS = """
### TEXT (sync, 1-10s, no file output)

TEXT is for WRITTEN output: "write", "explain", "summarize", "draft", "list".
Requests to SPEAK or SAY words go to a TTS model instead.

- gemini-2.5-flash: fast, high quality. DEFAULT CHOICE for text.
- gemini-2.5-pro: complex reasoning, long-form content, "detailed analysis".
- gemini-2.5-flash-lite: only for "quick", "simple", "cheap".
- gemini-2.0-flash / gemini-2.0-flash-lite: only when Gemini 2.0 is asked for.

Parameters:
- prompt: the full text generation request
- systemInstruction (optional): role or behaviour, e.g. "You are a travel guide"
- temperature (optional): 0.0-2.0; lower for factual, higher for creative writing
- maxOutputTokens (optional): only when the user limits the length
- topP, topK, stopSequences (optional): usually omit
"""

_GENERATION_FIELDS = ("temperature", "maxOutputTokens", "topP", "topK", "stopSequences")


def build_text_payload(validated: Dict[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": [{"text": validated["prompt"]}]}],
    }
    config = {k: validated[k] for k in _GENERATION_FIELDS if validated.get(k) is not None}
    if config:
        payload["generationConfig"] = config
    if validated.get("systemInstruction"):
        payload["systemInstruction"] = {"parts": [{"text": validated["systemInstruction"]}]}
    return payload


def build_text_adapter(
    model_id: ModelId,
    request_model,
    vertex: VertexClient,
    display_name: str,
    generation_time: str,
) -> ModelAdapter:
    schema = ModelSchema(model_id.value, request_model, hints=TEXT_HINTS)

    async def start(request: Dict[str, Any], job_id: str) -> StartResult:
        validated = schema.validate(request)
        logger.info("Starting %s text generation for job %s", model_id.value, job_id)

        response = await vertex.generate_content(model_id.value, build_text_payload(validated))
        text = first_candidate_text(response)
        if not text or not text.strip():
            reason = blocked_reason(response)
            if reason:
                raise BackendError(
                    f"Text generation blocked: {reason}",
                    code="CONTENT_FILTERED",
                    details={"reason": reason},
                )
            raise BackendError("No text content in response")

        usage = response.get("usageMetadata") or {}
        candidates = response.get("candidates") or [{}]
        logger.info("%s completed for job %s (%s chars)", model_id.value, job_id, len(text))
        return StartResult(
            output=ModelOutput(
                text=text,
                metadata={
                    "model": model_id.value,
                    "promptTokens": usage.get("promptTokenCount", 0),
                    "completionTokens": usage.get("candidatesTokenCount", 0),
                    "totalTokens": usage.get("totalTokenCount", 0),
                    "finishReason": candidates[0].get("finishReason") or "STOP",
                },
            )
        )

    return ModelAdapter(
        model_id=model_id,
        kind=MediaKind.TEXT,
        is_async=False,
        schema=schema,
        start=start,
        display_name=display_name,
        generation_time=generation_time,
    )


def build_text_adapters(vertex: VertexClient) -> List[ModelAdapter]:
    return [
        build_text_adapter(ModelId.GEMINI_25_PRO, Gemini25ProRequest, vertex, "Gemini 2.5 Pro", "2-10s"),
        build_text_adapter(ModelId.GEMINI_25_FLASH, Gemini25FlashRequest, vertex, "Gemini 2.5 Flash", "1-5s"),
        build_text_adapter(
            ModelId.GEMINI_25_FLASH_LITE, Gemini25FlashLiteRequest, vertex, "Gemini 2.5 Flash Lite", "1-3s"
        ),
        build_text_adapter(ModelId.GEMINI_20_FLASH, Gemini20FlashRequest, vertex, "Gemini 2.0 Flash", "1-5s"),
        build_text_adapter(
            ModelId.GEMINI_20_FLASH_LITE, Gemini20FlashLiteRequest, vertex, "Gemini 2.0 Flash Lite", "1-3s"
        ),
    ]
