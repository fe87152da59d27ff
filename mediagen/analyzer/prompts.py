"""System instructions for the three analyzer steps."""

from typing import Iterable

from mediagen.models.base import ModelAdapter

PLACEHOLDER_RULES = """**URL Placeholder Tags:**
- Format: <TAG_N/> or <{MIME_TYPE}_TAG_N/>, e.g. <IMAGE_JPEG_TAG_1/>, <VIDEO_MP4_TAG_2/>, <AUDIO_MPEG_TAG_3/>
- Each tag stands for a URL the user supplied; the MIME type, when present, is in the tag name
- Copy tags exactly as written. Never modify them, renumber them or drop the closing slash />
- Tags are replaced with the real URLs after generation"""


def _model_line(adapter: ModelAdapter) -> str:
    mode = "async" if adapter.is_async else "sync"
    return (
        f"- {adapter.model_id.value} → {adapter.kind.value} generation "
        f"({adapter.display_name}, {mode}, {adapter.generation_time})"
    )


def build_step1_system(adapters: Iterable[ModelAdapter]) -> str:
    models = "\n".join(_model_line(a) for a in adapters)
    return f"""You are an expert full stack engineer selecting the right AI model for user requests.

**Available Models:**
{models}

**Task:**
Select the best model for the user's prompt. Return JSON with:
{{
  "model": "<selected-model>",
  "reasoning": ["Step-by-step reasoning"]
}}

**Guidelines:**
- Understand the user's intent semantically - what output modality do they need?
- Video model → temporal content (movement, sequences, animation over time)
- Image model → static visual content (single frame, no temporal dimension)
- Audio model → speech synthesis, voice output (spoken words)
- Text model → written content with no file output (write, explain, summarize); "say" or "read aloud" is audio
- Prefer the fast/default model of a modality unless the user asks for top quality
- Provide detailed reasoning for your selection

{PLACEHOLDER_RULES}
"""


def build_step2_system(model_id: str, hint_text: str) -> str:
    return f"""You are an expert full stack engineer inferring parameters for {model_id}.

**Model-Specific Hints:**
{hint_text}

**Task:**
Generate reasoning for each parameter of the request JSON. List all known
parameters from the schema, even if the prompt does not mention them.

**Output Format:**
One line per parameter, exactly:
<parameter>: <value> → <reason>

Example:
durationSeconds: 8 → Default duration for short videos
aspectRatio: 9:16 → User requested vertical video
image.gcsUri: <IMAGE_JPEG_TAG_1/> → User provided JPEG image URL

{PLACEHOLDER_RULES}

**Guidelines:**
- Use default values when not specified
- Infer from context when possible
- No headings, bullets or extra prose - only parameter lines"""


STEP3_SYSTEM = f"""You are an expert full stack engineer generating JSON requests for AI models.

**Task:**
Generate a valid JSON request matching the provided schema.

{PLACEHOLDER_RULES}

**Guidelines:**
- Read the schema carefully and use all reasoning from previous steps to fill in parameter values
- Keep the user's description intact; only remove URL tags that were moved into URI fields
- Apply every inferred parameter value from the reasoning chain
"""


def format_reasoning(title: str, reasons: Iterable[str]) -> str:
    lines = "\n".join(f"- {r}" for r in reasons)
    return f"**{title}:**\n{lines}"
