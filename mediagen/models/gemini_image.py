"""Gemini 2.5 Flash Image (synchronous).

The backend returns the image inline as base64; it is uploaded to object
storage before the job completes.
"""

import base64
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from mediagen.errors import BackendError
from mediagen.llm.gemini import blocked_reason, find_inline_part
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.base import MediaKind, ModelAdapter, ModelId, ModelOutput, StartResult
from mediagen.models.schema import ModelSchema
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)

ImageAspectRatio = Literal["1:1", "3:2", "2:3", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"]


class InlineData(BaseModel):
    mimeType: str
    data: str


class FileData(BaseModel):
    mimeType: Optional[str] = None
    fileUri: str


class Part(BaseModel):
    text: Optional[str] = None
    inlineData: Optional[InlineData] = None
    fileData: Optional[FileData] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "Part":
        present = [f for f in ("text", "inlineData", "fileData") if getattr(self, f) is not None]
        if len(present) != 1:
            raise ValueError("each part needs exactly one of text, inlineData, fileData")
        return self


class Content(BaseModel):
    role: Optional[Literal["user"]] = None
    parts: List[Part] = Field(min_length=1)

    @model_validator(mode="after")
    def _has_text(self) -> "Content":
        if not any(p.text for p in self.parts):
            raise ValueError("at least one text part is required")
        return self


class ImageConfig(BaseModel):
    aspectRatio: Optional[ImageAspectRatio] = None


class ImageGenerationConfig(BaseModel):
    responseModalities: List[Literal["IMAGE"]] = Field(default_factory=lambda: ["IMAGE"])
    candidateCount: Optional[int] = Field(None, ge=1, le=4)
    imageConfig: Optional[ImageConfig] = None


class SafetySetting(BaseModel):
    category: str
    threshold: str


class FlashImageRequest(BaseModel):
    model: Literal["gemini-2.5-flash-image"]
    contents: List[Content] = Field(min_length=1)
    generationConfig: ImageGenerationConfig = Field(default_factory=ImageGenerationConfig)
    safetySettings: Optional[List[SafetySetting]] = None


FLASH_IMAGE_HINTS = """
### IMAGE - gemini-2.5-flash-image (sync, 2-5s)

- DEFAULT CHOICE for image generation and image editing.
- contents[0].parts: one text part with the visual description, plus one
  {"fileData": {"mimeType", "fileUri"}} part per reference image
  ("merge", "combine", "blend", "use this as reference", "edit this").
- generationConfig.imageConfig.aspectRatio:
  "portrait" → "2:3", "vertical" → "9:16", "landscape"/"horizontal" → "3:2",
  "square" → "1:1", explicit ratios verbatim, default "1:1".
- Copy URL placeholder tags into fileUri verbatim and remove them from the text.
"""


def build_flash_image_adapter(vertex: VertexClient, storage: ObjectStorage) -> ModelAdapter:
    model_id = ModelId.GEMINI_25_FLASH_IMAGE
    schema = ModelSchema(model_id.value, FlashImageRequest, hints=FLASH_IMAGE_HINTS)

    async def start(request: Dict[str, Any], job_id: str) -> StartResult:
        validated = schema.validate(request)
        generation_config = validated.get("generationConfig") or {}
        logger.info(
            "Starting %s generation for job %s (imageConfig=%s)",
            model_id.value,
            job_id,
            generation_config.get("imageConfig"),
        )

        payload: Dict[str, Any] = {
            "contents": validated["contents"],
            "generationConfig": generation_config,
        }
        if validated.get("safetySettings"):
            payload["safetySettings"] = validated["safetySettings"]
        response = await vertex.generate_content(model_id.value, payload)

        inline = find_inline_part(response, "image/")
        if inline is None:
            reason = blocked_reason(response)
            if reason:
                raise BackendError(
                    f"Image generation blocked: {reason}",
                    code="CONTENT_FILTERED",
                    details={"reason": reason},
                )
            raise BackendError("No image data in response")

        data = base64.b64decode(inline["data"])
        mime_type = inline.get("mimeType") or "image/png"
        uri = storage.output_uri_for(job_id, validated, MediaKind.IMAGE.value, mime_type)
        await storage.upload(data, uri, mime_type)
        logger.info("%s generation completed for job %s: %s", model_id.value, job_id, uri)

        aspect = (generation_config.get("imageConfig") or {}).get("aspectRatio") or "1:1"
        return StartResult(
            output=ModelOutput(
                uri=uri,
                mime_type=mime_type,
                size=len(data),
                metadata={"aspectRatio": aspect},
            )
        )

    return ModelAdapter(
        model_id=model_id,
        kind=MediaKind.IMAGE,
        is_async=False,
        schema=schema,
        start=start,
        display_name="Gemini 2.5 Flash Image",
        generation_time="2-5s",
    )
