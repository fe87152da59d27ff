"""Veo 3.1 video generation (asynchronous, long-running operations).

Request shape follows the Vertex AI ``predictLongRunning`` body:
``{"model", "instances": [{prompt, image?, video?, lastFrame?, referenceImages?}], "parameters": {...}}``.
Output is written by the backend straight to ``parameters.storageUri``.
"""

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from mediagen.errors import BackendError
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.base import (
    MediaKind,
    ModelAdapter,
    ModelId,
    ModelOutput,
    OperationResult,
    StartResult,
)
from mediagen.models.schema import ModelSchema
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)

VeoAspectRatio = Literal["16:9", "9:16", "1:1", "21:9", "3:4", "4:3"]


class Media(BaseModel):
    gcsUri: Optional[str] = None
    bytesBase64Encoded: Optional[str] = None
    mimeType: Optional[str] = None


class ReferenceImage(BaseModel):
    image: Media
    referenceType: Optional[Literal["ASSET", "STYLE"]] = None


class VeoInstance(BaseModel):
    prompt: str = Field(min_length=1)
    image: Optional[Media] = None
    video: Optional[Media] = None
    lastFrame: Optional[Media] = None
    referenceImages: Optional[List[ReferenceImage]] = Field(None, max_length=3)


class VeoParameters(BaseModel):
    aspectRatio: VeoAspectRatio = "16:9"
    compressionQuality: Optional[Literal["OPTIMIZED", "LOSSLESS"]] = None
    durationSeconds: Literal[4, 6, 8] = 8
    enhancePrompt: Optional[bool] = None
    generateAudio: bool = True
    negativePrompt: Optional[str] = None
    personGeneration: Optional[Literal["dont_allow", "allow_adult"]] = None
    sampleCount: int = Field(1, ge=1, le=4)
    seed: Optional[int] = None
    storageUri: Optional[str] = None


class Veo31Request(BaseModel):
    model: Literal["veo-3.1-generate-preview"]
    instances: List[VeoInstance] = Field(min_length=1)
    parameters: VeoParameters = Field(default_factory=VeoParameters)


class Veo31FastRequest(BaseModel):
    model: Literal["veo-3.1-fast-generate-preview"]
    instances: List[VeoInstance] = Field(min_length=1)
    parameters: VeoParameters = Field(default_factory=VeoParameters)


VEO_HINTS = """
### VIDEO (async, 30-120s generation time)

- veo-3.1-fast-generate-preview: general use, 30-60s. DEFAULT CHOICE for video.
- veo-3.1-generate-preview: highest quality, 60-120s. Use only when the user asks
  for "high quality", "cinematic", "best quality".

Parameters:
- parameters.durationSeconds: 4 | 6 | 8 (default 8; "short"/"brief" → 4)
- parameters.aspectRatio: "16:9" | "9:16" | "1:1" | "21:9" | "3:4" | "4:3"
  ("vertical"/"portrait" → "9:16", "horizontal"/"landscape" → "16:9", default "16:9")
- parameters.generateAudio: false only for "silent"/"no audio"
- parameters.negativePrompt: unwanted elements from "avoid X", "without Y", "no Z"
- instances[0].image.gcsUri: image to animate or first frame
- instances[0].lastFrame.gcsUri: last frame for "from X to Y" transitions
- instances[0].video.gcsUri: video to extend
- instances[0].referenceImages: up to 3 subject images ({"image": {"gcsUri"}, "referenceType": "ASSET"})
  Never combine referenceImages with image.
- Copy URL placeholder tags into gcsUri fields verbatim and remove them from the prompt.
"""


def extract_video(payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """First video entry of a finished operation, in either response layout."""
    payload = payload or {}
    videos = payload.get("videos") or []
    if videos and videos[0].get("gcsUri"):
        return {"uri": videos[0]["gcsUri"], "mimeType": videos[0].get("mimeType")}
    generated = payload.get("generatedVideos") or []
    if generated:
        uri = (generated[0].get("video") or {}).get("uri")
        if uri:
            return {"uri": uri, "mimeType": None}
    return None


def build_veo_adapter(
    model_id: ModelId,
    request_model,
    vertex: VertexClient,
    storage: ObjectStorage,
    display_name: str,
    generation_time: str,
) -> ModelAdapter:
    schema = ModelSchema(model_id.value, request_model, hints=VEO_HINTS)

    async def start(request: Dict[str, Any], job_id: str) -> StartResult:
        validated = schema.validate(request)
        parameters = dict(validated.get("parameters") or {})
        parameters["storageUri"] = storage.job_dir_uri(job_id)

        logger.info(
            "Starting %s generation for job %s (duration=%ss aspect=%s)",
            model_id.value,
            job_id,
            parameters.get("durationSeconds"),
            parameters.get("aspectRatio"),
        )
        handle = await vertex.predict_long_running(
            model_id.value,
            {"instances": validated["instances"], "parameters": parameters},
        )
        logger.info("%s operation started for job %s: %s", model_id.value, job_id, handle)
        return StartResult(operation_handle=handle)

    async def poll(operation_handle: str) -> OperationResult:
        op = await vertex.fetch_predict_operation(model_id.value, operation_handle)
        if op.get("error"):
            return OperationResult.errored(op["error"])
        if not op.get("done"):
            return OperationResult.pending()
        return OperationResult.done(op.get("response"))

    async def extract_output(result: OperationResult, job_id: str) -> ModelOutput:
        payload = result.payload or {}
        video = extract_video(payload)
        if video is None:
            filtered = payload.get("raiMediaFilteredCount") or 0
            if filtered:
                raise BackendError(
                    "Video was blocked by content filters",
                    code="CONTENT_FILTERED",
                    details={"reasons": payload.get("raiMediaFilteredReasons", [])},
                )
            raise BackendError("No video URI in Veo response")

        mime_type = video["mimeType"] or "video/mp4"
        logger.info("Extracted %s output for job %s: %s", model_id.value, job_id, video["uri"])
        return ModelOutput(uri=video["uri"], mime_type=mime_type)

    return ModelAdapter(
        model_id=model_id,
        kind=MediaKind.VIDEO,
        is_async=True,
        schema=schema,
        start=start,
        poll=poll,
        extract_output=extract_output,
        display_name=display_name,
        generation_time=generation_time,
    )


def build_veo_adapters(vertex: VertexClient, storage: ObjectStorage) -> List[ModelAdapter]:
    return [
        build_veo_adapter(
            ModelId.VEO_31, Veo31Request, vertex, storage, "Veo 3.1", "60-120s"
        ),
        build_veo_adapter(
            ModelId.VEO_31_FAST, Veo31FastRequest, vertex, storage, "Veo 3.1 Fast", "30-60s"
        ),
    ]
