"""Request analyzer: natural-language prompt → structured model request.

Pre-process (tag URLs) → step 1 (model) → step 2 (parameters) →
step 3 (JSON) → post-process (numeric enums, restore URLs).

Each run owns its tag map and reasoning list; runs share nothing else.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mediagen.analyzer.steps import AIBackend, generate_json, infer_parameters, select_model
from mediagen.analyzer.url_tags import UrlTagCodec
from mediagen.config import Settings
from mediagen.errors import UnknownTagError
from mediagen.models.registry import ModelRegistry
from mediagen.models.schema import coerce_numeric_enums

logger = logging.getLogger(__name__)


@dataclass
class AnalyzeResult:
    model: str
    request: Dict[str, Any]
    reasons: List[str]
    unknown_tags: List[str] = field(default_factory=list)


class RequestAnalyzer:

    def __init__(self, backend: AIBackend, registry: ModelRegistry, codec: UrlTagCodec):
        self.backend = backend
        self.registry = registry
        self.codec = codec

    @classmethod
    def from_settings(cls, backend: AIBackend, registry: ModelRegistry, settings: Settings) -> "RequestAnalyzer":
        codec = UrlTagCodec(
            tag_mime_types=settings.analyzer_tag_mime_types,
            normalize_storage_urls=settings.analyzer_normalize_storage_urls,
        )
        return cls(backend, registry, codec)

    async def analyze(self, prompt: str, job_id: str, model: Optional[str] = None) -> AnalyzeResult:
        """Run the full pipeline for one prompt.

        When ``model`` is given, step 1 is skipped and that model is used.
        Raises ``AnalyzerStepError`` if any AI step fails and
        ``UnknownModelError`` if the model is not in the registry.
        """
        # Pre-process: URLs → tags
        (tagged_prompt,), tag_map = self.codec.preprocess([prompt])
        logger.info("[%s] Analyzing prompt (%s chars, %s url(s))", job_id, len(prompt), len(tag_map))

        # Step 1: model selection
        if model is None:
            selection = await select_model(
                self.backend, tagged_prompt, self.registry.list_models(), job_id
            )
            adapter = self.registry.get(selection.model)
            step1_reasons = selection.reasoning
            logger.info("[%s] Step 1 selected %s", job_id, adapter.model_id.value)
        else:
            adapter = self.registry.get(model)
            step1_reasons = [f"Model {adapter.model_id.value} was specified by the caller"]

        # Step 2: parameter inference
        step2_reasons = await infer_parameters(
            self.backend,
            tagged_prompt,
            adapter.model_id.value,
            step1_reasons,
            adapter.schema,
            job_id,
        )
        reasons = [*step1_reasons, *step2_reasons]
        logger.info("[%s] Step 2 inferred %s parameter line(s)", job_id, len(step2_reasons))

        # Step 3: JSON generation
        json_with_tags = await generate_json(
            self.backend, tagged_prompt, reasons, adapter.schema, job_id
        )
        json_with_tags = coerce_numeric_enums(json_with_tags)
        json_with_tags.setdefault("model", adapter.model_id.value)
        logger.info("[%s] Step 3 generated request for %s", job_id, adapter.model_id.value)

        # Post-process: tags → URLs
        unknown: List[str] = []

        def on_unknown(error: UnknownTagError) -> None:
            unknown.append(error.placeholder)

        request = self.codec.restore_structure(json_with_tags, tag_map, on_unknown=on_unknown)
        if unknown:
            logger.warning("[%s] %s unknown URL tag(s) left in request: %s", job_id, len(unknown), unknown)

        return AnalyzeResult(
            model=adapter.model_id.value,
            request=request,
            reasons=reasons,
            unknown_tags=unknown,
        )
