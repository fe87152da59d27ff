"""Capability records and data types for the model registry.

A backend model is a plain record of functions rather than a class
hierarchy: ``start`` always, ``poll`` and ``extract_output`` only for
asynchronous models. Shared behaviour lives in helper functions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from mediagen.models.schema import ModelSchema


class ModelId(str, Enum):
    VEO_31 = "veo-3.1-generate-preview"
    VEO_31_FAST = "veo-3.1-fast-generate-preview"
    GEMINI_25_FLASH_IMAGE = "gemini-2.5-flash-image"
    GEMINI_25_FLASH_TTS = "gemini-2.5-flash-preview-tts"
    GEMINI_25_PRO_TTS = "gemini-2.5-pro-preview-tts"
    IMAGEN_4 = "imagen-4.0-generate-001"
    IMAGEN_4_FAST = "imagen-4.0-fast-generate-001"
    IMAGEN_4_ULTRA = "imagen-4.0-ultra-generate-001"
    GEMINI_25_PRO = "gemini-2.5-pro"
    GEMINI_25_FLASH = "gemini-2.5-flash"
    GEMINI_25_FLASH_LITE = "gemini-2.5-flash-lite"
    GEMINI_20_FLASH = "gemini-2.0-flash"
    GEMINI_20_FLASH_LITE = "gemini-2.0-flash-lite"


class MediaKind(str, Enum):
    VIDEO = "video"
    IMAGE = "image"
    AUDIO = "audio"
    TEXT = "text"


@dataclass
class ModelOutput:
    """Result of a finished generation."""
    uri: Optional[str] = None
    text: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StartResult:
    """Either an operation handle (async models) or the output (sync models)."""
    operation_handle: Optional[str] = None
    output: Optional[ModelOutput] = None


class OperationState(str, Enum):
    PENDING = "pending"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class OperationResult:
    state: OperationState
    payload: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def pending(cls) -> "OperationResult":
        return cls(OperationState.PENDING)

    @classmethod
    def done(cls, payload: Optional[Dict[str, Any]]) -> "OperationResult":
        return cls(OperationState.DONE, payload=payload or {})

    @classmethod
    def errored(cls, details: Dict[str, Any]) -> "OperationResult":
        return cls(OperationState.ERRORED, error=details)


StartFn = Callable[[Dict[str, Any], str], Awaitable[StartResult]]
PollFn = Callable[[str], Awaitable[OperationResult]]
ExtractFn = Callable[[OperationResult, str], Awaitable[ModelOutput]]


@dataclass(frozen=True)
class ModelAdapter:
    """Capability record for one backend model. Immutable after registration."""
    model_id: ModelId
    kind: MediaKind
    is_async: bool
    schema: ModelSchema
    start: StartFn
    poll: Optional[PollFn] = None
    extract_output: Optional[ExtractFn] = None
    display_name: str = ""
    generation_time: str = ""
