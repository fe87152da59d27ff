"""Model registry: model id → capability record and request schema.

Resolution is a pure lookup. The registry is checked exhaustively when it
is built, so a missing or malformed record fails at startup rather than
at request time.
"""

import logging
from typing import Dict, Iterable, List, Optional

from mediagen.errors import UnknownModelError
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.base import MediaKind, ModelAdapter, ModelId
from mediagen.models.gemini_image import build_flash_image_adapter
from mediagen.models.gemini_text import build_text_adapters
from mediagen.models.gemini_tts import build_tts_adapters
from mediagen.models.imagen import build_imagen_adapters
from mediagen.models.schema import ModelSchema
from mediagen.models.veo import build_veo_adapters
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Static mapping from ``ModelId`` to its ``ModelAdapter``."""

    def __init__(self, adapters: Iterable[ModelAdapter], required: Optional[Iterable[ModelId]] = None):
        self._adapters: Dict[ModelId, ModelAdapter] = {}
        for adapter in adapters:
            if adapter.model_id in self._adapters:
                raise ValueError(f"Duplicate adapter for {adapter.model_id.value}")
            _check_capabilities(adapter)
            self._adapters[adapter.model_id] = adapter

        expected = set(ModelId) if required is None else set(required)
        missing = expected - set(self._adapters)
        if missing:
            raise ValueError(
                "No adapter registered for: " + ", ".join(sorted(m.value for m in missing))
            )
        for adapter in self._adapters.values():
            logger.debug(
                "Registered model: %s (%s, %s)",
                adapter.model_id.value,
                adapter.kind.value,
                "async" if adapter.is_async else "sync",
            )

    def is_known(self, model_id: object) -> bool:
        try:
            return ModelId(model_id) in self._adapters
        except ValueError:
            return False

    def get(self, model_id: object) -> ModelAdapter:
        """Resolve a model id. Raises ``UnknownModelError`` if absent."""
        try:
            key = ModelId(model_id)
        except ValueError:
            raise UnknownModelError(model_id) from None
        adapter = self._adapters.get(key)
        if adapter is None:
            raise UnknownModelError(model_id)
        return adapter

    def get_schema(self, model_id: object) -> ModelSchema:
        return self.get(model_id).schema

    def list_models(self, kind: Optional[MediaKind] = None) -> List[ModelAdapter]:
        adapters = list(self._adapters.values())
        if kind:
            adapters = [a for a in adapters if a.kind == kind]
        return adapters

    def model_ids(self) -> List[str]:
        return [m.value for m in self._adapters]


def _check_capabilities(adapter: ModelAdapter) -> None:
    has_poll = adapter.poll is not None and adapter.extract_output is not None
    if adapter.is_async and not has_poll:
        raise ValueError(f"Async model {adapter.model_id.value} must provide poll and extract_output")
    if not adapter.is_async and (adapter.poll is not None or adapter.extract_output is not None):
        raise ValueError(f"Sync model {adapter.model_id.value} must not provide poll or extract_output")
    if adapter.schema.model_id != adapter.model_id.value:
        raise ValueError(f"Schema mismatch for {adapter.model_id.value}")


def build_registry(vertex: VertexClient, storage: ObjectStorage) -> ModelRegistry:
    """Registry with every supported model wired to the given backends."""
    return ModelRegistry(
        [
            *build_veo_adapters(vertex, storage),
            build_flash_image_adapter(vertex, storage),
            *build_tts_adapters(vertex, storage),
            *build_imagen_adapters(vertex, storage),
            *build_text_adapters(vertex),
        ]
    )
