"""Models API — list registered models and their request schemas."""

from typing import Optional

from fastapi import APIRouter, Depends

from mediagen.api.v1.deps import Services, get_services
from mediagen.models.base import MediaKind

router = APIRouter()


@router.get("/models")
async def list_models(
    kind: Optional[MediaKind] = None,
    services: Services = Depends(get_services),
):
    """List all registered models with optional filtering by media kind."""
    adapters = services.registry.list_models(kind=kind)
    return {
        "models": [
            {
                "model_id": a.model_id.value,
                "name": a.display_name,
                "kind": a.kind.value,
                "async": a.is_async,
                "generation_time": a.generation_time,
            }
            for a in adapters
        ],
        "count": len(adapters),
    }


@router.get("/models/{model_id}/schema")
async def get_model_schema(model_id: str, services: Services = Depends(get_services)):
    """JSON schema of a model's request body."""
    schema = services.registry.get_schema(model_id)
    return {"model_id": schema.model_id, "schema": schema.to_json_schema()}
