"""Turn a model output into the job's ``response`` and ``files`` fields."""

from typing import Any, Dict, Tuple

from mediagen.jobs.models import FileInfo
from mediagen.models.base import ModelOutput
from mediagen.storage.object_store import ObjectStorage, extension_for


async def build_job_output(
    output: ModelOutput,
    kind: str,
    storage: ObjectStorage,
    signed_url_ttl_seconds: float,
) -> Tuple[Dict[str, Any], Dict[str, FileInfo]]:
    response: Dict[str, Any] = {}
    files: Dict[str, FileInfo] = {}

    if output.uri:
        url = await storage.signed_url_for(output.uri, signed_url_ttl_seconds)
        response["uri"] = output.uri
        if url:
            response["url"] = url
        files[f"file0{extension_for(kind, output.mime_type)}"] = FileInfo(
            gs=output.uri,
            https=url,
            mime_type=output.mime_type,
            size=output.size,
        )
    if output.text:
        response["text"] = output.text
    if output.mime_type:
        response["mimeType"] = output.mime_type
    if output.metadata:
        response["metadata"] = output.metadata
    return response, files
