"""Imagen 4.0 image generation (synchronous ``predict``).

Request shape follows the Vertex AI predict body:
``{"model", "instances": [{prompt}], "parameters": {aspectRatio, sampleCount, ...}}``.
The first returned image comes back as base64 and is uploaded to object
storage before the job completes.
"""

import base64
import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from mediagen.errors import BackendError
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.base import MediaKind, ModelAdapter, ModelId, ModelOutput, StartResult
from mediagen.models.gemini_image import ImageAspectRatio
from mediagen.models.schema import ModelSchema
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)


class ImagenInstance(BaseModel):
    prompt: str = Field(min_length=1, max_length=10000)


class ImagenParameters(BaseModel):
    aspectRatio: ImageAspectRatio = "1:1"
    sampleCount: int = Field(1, ge=1, le=4)
    enhancePrompt: Optional[bool] = None
    negativePrompt: Optional[str] = None
    personGeneration: Optional[Literal["allow_adult", "dont_allow"]] = None
    language: Optional[str] = None
    safetySetting: Optional[
        Literal["block_low_and_above", "block_medium_and_above", "block_only_high", "block_none"]
    ] = None
    seed: Optional[int] = None


class ImagenRequestBase(BaseModel):
    instances: List[ImagenInstance] = Field(min_length=1, max_length=1)
    parameters: ImagenParameters = Field(default_factory=ImagenParameters)


class Imagen4Request(ImagenRequestBase):
    model: Literal["imagen-4.0-generate-001"]


class Imagen4FastRequest(ImagenRequestBase):
    model: Literal["imagen-4.0-fast-generate-001"]


class Imagen4UltraRequest(ImagenRequestBase):
    model: Literal["imagen-4.0-ultra-generate-001"]


IMAGEN_HINTS = """
### IMAGE - Imagen 4.0 (sync, 2-12s)

- imagen-4.0-generate-001: "high quality", "photorealistic", "detailed".
- imagen-4.0-fast-generate-001: the user asks for Imagen but mentions speed.
- imagen-4.0-ultra-generate-001: "ultra quality", "maximum detail".
- Imagen is text-to-image only: requests with reference images go to gemini-2.5-flash-image.

Parameters:
- instances[0].prompt: the visual description
- parameters.aspectRatio: "portrait" → "2:3", "vertical"/"phone screen" → "9:16",
  "landscape" → "3:2", "horizontal"/"widescreen" → "16:9", explicit ratios verbatim,
  default "1:1"
- parameters.negativePrompt: unwanted elements from "avoid X", "without Y", "no Z"
- parameters.sampleCount: 1 unless the user asks for variations (max 4)
- parameters.personGeneration, parameters.safetySetting: usually omit
"""


def first_prediction(response: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """First prediction that carries image bytes."""
    for prediction in response.get("predictions") or []:
        if isinstance(prediction, dict) and prediction.get("bytesBase64Encoded"):
            return prediction
    return None


def filtered_reason(response: Dict[str, Any]) -> Optional[str]:
    for prediction in response.get("predictions") or []:
        if isinstance(prediction, dict) and prediction.get("raiFilteredReason"):
            return prediction["raiFilteredReason"]
    return None


def build_imagen_adapter(
    model_id: ModelId,
    request_model,
    vertex: VertexClient,
    storage: ObjectStorage,
    display_name: str,
    generation_time: str,
) -> ModelAdapter:
    schema = ModelSchema(model_id.value, request_model, hints=IMAGEN_HINTS)

    async def start(request: Dict[str, Any], job_id: str) -> StartResult:
        validated = schema.validate(request)
        parameters = validated["parameters"]
        logger.info(
            "Starting %s generation for job %s (aspectRatio=%s)",
            model_id.value,
            job_id,
            parameters.get("aspectRatio"),
        )

        response = await vertex.predict(
            model_id.value,
            {"instances": validated["instances"], "parameters": parameters},
        )
        prediction = first_prediction(response)
        if prediction is None:
            reason = filtered_reason(response)
            if reason:
                raise BackendError(
                    f"Image generation filtered: {reason}",
                    code="CONTENT_FILTERED",
                    details={"reason": reason},
                )
            raise BackendError("No image data in Imagen response")

        data = base64.b64decode(prediction["bytesBase64Encoded"])
        mime_type = prediction.get("mimeType") or "image/png"
        uri = storage.output_uri_for(job_id, validated, MediaKind.IMAGE.value, mime_type)
        await storage.upload(data, uri, mime_type)
        logger.info("%s generation completed for job %s: %s", model_id.value, job_id, uri)

        metadata: Dict[str, Any] = {"aspectRatio": parameters.get("aspectRatio", "1:1")}
        if prediction.get("prompt"):
            metadata["enhancedPrompt"] = prediction["prompt"]
        return StartResult(
            output=ModelOutput(uri=uri, mime_type=mime_type, size=len(data), metadata=metadata)
        )

    return ModelAdapter(
        model_id=model_id,
        kind=MediaKind.IMAGE,
        is_async=False,
        schema=schema,
        start=start,
        display_name=display_name,
        generation_time=generation_time,
    )


def build_imagen_adapters(vertex: VertexClient, storage: ObjectStorage) -> List[ModelAdapter]:
    return [
        build_imagen_adapter(ModelId.IMAGEN_4, Imagen4Request, vertex, storage, "Imagen 4.0", "3-8s"),
        build_imagen_adapter(
            ModelId.IMAGEN_4_FAST, Imagen4FastRequest, vertex, storage, "Imagen 4.0 Fast", "2-5s"
        ),
        build_imagen_adapter(
            ModelId.IMAGEN_4_ULTRA, Imagen4UltraRequest, vertex, storage, "Imagen 4.0 Ultra", "5-12s"
        ),
    ]
