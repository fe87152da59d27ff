"""Text/JSON completion backend used by the request analyzer."""

import logging
from typing import Any, Dict, Optional

from mediagen.errors import EmptyResponseError
from mediagen.llm.vertex_client import VertexClient

logger = logging.getLogger(__name__)


def first_candidate_text(response: Dict[str, Any]) -> Optional[str]:
    candidates = response.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    texts = [p["text"] for p in parts if isinstance(p, dict) and p.get("text")]
    return "".join(texts) if texts else None


def find_inline_part(response: Dict[str, Any], mime_prefix: str) -> Optional[Dict[str, Any]]:
    """First ``inlineData`` part of the first candidate whose MIME type starts with ``mime_prefix``."""
    candidates = response.get("candidates") or []
    if not candidates:
        return None
    for part in (candidates[0].get("content") or {}).get("parts") or []:
        inline = part.get("inlineData") if isinstance(part, dict) else None
        if inline and str(inline.get("mimeType", "")).startswith(mime_prefix) and inline.get("data"):
            return inline
    return None


def blocked_reason(response: Dict[str, Any]) -> Optional[str]:
    """Why a generateContent call produced no content, if the backend says so."""
    feedback = response.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        return feedback["blockReason"]
    candidates = response.get("candidates") or []
    if candidates and candidates[0].get("finishReason") in ("SAFETY", "PROHIBITED_CONTENT", "IMAGE_SAFETY"):
        return candidates[0]["finishReason"]
    return None


class GeminiBackend:
    """Calls a Gemini model through Vertex ``generateContent``.

    Deterministic mode pins temperature 0, topK 1, a single candidate and a
    fixed seed so repeated calls on identical input produce identical text.
    """

    def __init__(
        self,
        vertex: VertexClient,
        model: str = "gemini-2.5-flash-lite",
        seed: int = 0,
        max_output_tokens: int = 8192,
    ):
        self.vertex = vertex
        self.model = model
        self.seed = seed
        self.max_output_tokens = max_output_tokens

    def build_payload(
        self,
        system_instruction: str,
        user_content: str,
        additional_context: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        deterministic: bool = True,
    ) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {"maxOutputTokens": self.max_output_tokens}
        if deterministic:
            generation_config.update(
                {"temperature": 0, "topK": 1, "candidateCount": 1, "seed": self.seed}
            )
        if response_schema is not None:
            generation_config["responseMimeType"] = "application/json"
            generation_config["responseSchema"] = response_schema

        # Prompt first, accumulated context as a second part
        parts = [{"text": user_content}]
        if additional_context:
            parts.append({"text": additional_context})

        return {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
        }

    async def call(
        self,
        system_instruction: str,
        user_content: str,
        additional_context: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
        deterministic: bool = True,
    ) -> str:
        payload = self.build_payload(
            system_instruction,
            user_content,
            additional_context=additional_context,
            response_schema=response_schema,
            deterministic=deterministic,
        )
        response = await self.vertex.generate_content(self.model, payload)
        text = first_candidate_text(response)
        if not text:
            raise EmptyResponseError(f"{self.model} returned no candidate text")
        return text
