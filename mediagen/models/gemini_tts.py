"""Gemini text-to-speech models (synchronous).

The backend returns raw 16-bit PCM inline; it is wrapped in a WAV
container before upload.
"""

import base64
import io
import logging
import re
import wave
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from mediagen.errors import BackendError
from mediagen.llm.gemini import blocked_reason, find_inline_part
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.base import MediaKind, ModelAdapter, ModelId, ModelOutput, StartResult
from mediagen.models.schema import ModelSchema
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 24000

Voice = Literal[
    "Zephyr", "Puck", "Charon", "Kore", "Fenrir", "Leda", "Orus", "Aoede",
    "Callirrhoe", "Autonoe", "Enceladus", "Iapetus", "Umbriel", "Algieba",
    "Despina", "Erinome", "Algenib", "Rasalgethi", "Laomedeia", "Achernar",
    "Alnilam", "Schedar", "Gacrux", "Pulcherrima", "Achird", "Zubenelgenubi",
    "Vindemiatrix", "Sadachbia", "Sadaltager", "Sulafat",
]


class TextPart(BaseModel):
    text: str = Field(min_length=1)


class TtsContent(BaseModel):
    role: Optional[Literal["user"]] = None
    parts: List[TextPart] = Field(min_length=1)


class PrebuiltVoiceConfig(BaseModel):
    voiceName: Voice


class VoiceConfig(BaseModel):
    prebuiltVoiceConfig: PrebuiltVoiceConfig


class SpeechConfig(BaseModel):
    voiceConfig: Optional[VoiceConfig] = None
    languageCode: Optional[str] = None


class TtsGenerationConfig(BaseModel):
    responseModalities: List[Literal["AUDIO"]] = Field(default_factory=lambda: ["AUDIO"])
    speechConfig: Optional[SpeechConfig] = None


class FlashTtsRequest(BaseModel):
    model: Literal["gemini-2.5-flash-preview-tts"]
    contents: List[TtsContent] = Field(min_length=1)
    generationConfig: TtsGenerationConfig = Field(default_factory=TtsGenerationConfig)


class ProTtsRequest(BaseModel):
    model: Literal["gemini-2.5-pro-preview-tts"]
    contents: List[TtsContent] = Field(min_length=1)
    generationConfig: TtsGenerationConfig = Field(default_factory=TtsGenerationConfig)


TTS_HINTS = """
### AUDIO - TTS (text-to-speech, sync, 2-8s)

TTS is for SPOKEN WORDS: "say", "speak", "voice", "read aloud", "narrate", "announce".

- gemini-2.5-flash-preview-tts: DEFAULT CHOICE for speech.
- gemini-2.5-pro-preview-tts: only for "high quality" / "professional" narration.
- contents[0].parts[0].text: exactly the words to speak, without the instruction.
- generationConfig.speechConfig.voiceConfig.prebuiltVoiceConfig.voiceName (optional):
  cheerful → "Puck", calm → "Kore", deep → "Charon", bright → "Zephyr".
- generationConfig.speechConfig.languageCode (optional): BCP-47 such as "en-US", "fr-FR".
"""


def _pcm_rate(mime_type: str) -> Optional[int]:
    """Sample rate of a raw PCM MIME type such as ``audio/L16;codec=pcm;rate=24000``."""
    lowered = mime_type.lower()
    if not (lowered.startswith("audio/l16") or lowered.startswith("audio/pcm")):
        return None
    match = re.search(r"rate=(\d+)", lowered)
    return int(match.group(1)) if match else DEFAULT_SAMPLE_RATE


def to_wav(data: bytes, mime_type: str) -> Tuple[bytes, str, int]:
    """Wrap raw mono 16-bit PCM in a WAV container; other formats pass through."""
    rate = _pcm_rate(mime_type)
    if rate is None:
        return data, mime_type, DEFAULT_SAMPLE_RATE
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(data)
    return buf.getvalue(), "audio/wav", rate


def build_tts_adapter(
    model_id: ModelId,
    request_model,
    vertex: VertexClient,
    storage: ObjectStorage,
    display_name: str,
) -> ModelAdapter:
    schema = ModelSchema(model_id.value, request_model, hints=TTS_HINTS)

    async def start(request: Dict[str, Any], job_id: str) -> StartResult:
        validated = schema.validate(request)
        generation_config = validated.get("generationConfig") or {}
        speech_config = generation_config.get("speechConfig") or {}
        logger.info("Starting %s for job %s (speechConfig=%s)", model_id.value, job_id, speech_config)

        response = await vertex.generate_content(
            model_id.value,
            {"contents": validated["contents"], "generationConfig": generation_config},
        )
        inline = find_inline_part(response, "audio/")
        if inline is None:
            reason = blocked_reason(response)
            if reason:
                raise BackendError(
                    f"Speech generation blocked: {reason}",
                    code="CONTENT_FILTERED",
                    details={"reason": reason},
                )
            raise BackendError("No audio data in TTS response")

        pcm = base64.b64decode(inline["data"])
        data, mime_type, rate = to_wav(pcm, inline.get("mimeType") or "audio/wav")
        uri = storage.output_uri_for(job_id, validated, MediaKind.AUDIO.value, mime_type)
        await storage.upload(data, uri, mime_type)
        logger.info("%s completed for job %s: %s", model_id.value, job_id, uri)

        voice = (
            (speech_config.get("voiceConfig") or {})
            .get("prebuiltVoiceConfig", {})
            .get("voiceName", "auto")
        )
        return StartResult(
            output=ModelOutput(
                uri=uri,
                mime_type=mime_type,
                size=len(data),
                metadata={
                    "voice": voice,
                    "duration": len(pcm) / (rate * 2),
                    "sampleRate": rate,
                    "channels": 1,
                },
            )
        )

    return ModelAdapter(
        model_id=model_id,
        kind=MediaKind.AUDIO,
        is_async=False,
        schema=schema,
        start=start,
        display_name=display_name,
        generation_time="2-8s",
    )


def build_tts_adapters(vertex: VertexClient, storage: ObjectStorage) -> List[ModelAdapter]:
    return [
        build_tts_adapter(
            ModelId.GEMINI_25_FLASH_TTS, FlashTtsRequest, vertex, storage, "Gemini 2.5 Flash TTS"
        ),
        build_tts_adapter(
            ModelId.GEMINI_25_PRO_TTS, ProTtsRequest, vertex, storage, "Gemini 2.5 Pro TTS"
        ),
    ]
