import json

import pytest

from mediagen.analyzer.pipeline import RequestAnalyzer
from mediagen.analyzer.steps import parse_reasoning_lines
from mediagen.errors import AnalyzerStepError, EmptyResponseError, UnknownModelError
from tests.fakes import FakeAIBackend, selection_json

VEO_FAST = "veo-3.1-fast-generate-preview"

STEP2_LINES = """
instances[0].prompt: Animate the cat → user description
  aspectRatio: 9:16 → user requested vertical video

durationSeconds: 8 → Default duration for short videos
instances[0].image.gcsUri: <IMAGE_JPEG_TAG_1/> → user provided JPEG image URL
"""

STEP3_JSON = json.dumps(
    {
        "model": VEO_FAST,
        "instances": [{"prompt": "Animate the cat", "image": {"gcsUri": "<IMAGE_JPEG_TAG_1/>"}}],
        "parameters": {"aspectRatio": "9:16", "durationSeconds": "8"},
    }
)


def make_analyzer(registry, settings, backend):
    return RequestAnalyzer.from_settings(backend, registry, settings)


async def test_pipeline_resolves_prompt_to_restored_request(registry, settings):
    backend = FakeAIBackend(
        step1=selection_json(VEO_FAST, "User wants motion: temporal content", "Fast model is the default"),
        step2=STEP2_LINES,
        step3=STEP3_JSON,
    )
    analyzer = make_analyzer(registry, settings, backend)

    result = await analyzer.analyze("Animate https://x.test/cat.jpg into a vertical video", "job-1")

    assert result.model == VEO_FAST
    assert result.request == {
        "model": VEO_FAST,
        "instances": [
            {
                "prompt": "Animate the cat",
                "image": {"gcsUri": "https://x.test/cat.jpg", "mimeType": "image/jpeg"},
            }
        ],
        "parameters": {"aspectRatio": "9:16", "durationSeconds": 8},
    }
    assert result.reasons == [
        "User wants motion: temporal content",
        "Fast model is the default",
        "instances[0].prompt: Animate the cat → user description",
        "aspectRatio: 9:16 → user requested vertical video",
        "durationSeconds: 8 → Default duration for short videos",
        "instances[0].image.gcsUri: <IMAGE_JPEG_TAG_1/> → user provided JPEG image URL",
    ]
    assert result.unknown_tags == []
    assert backend.steps_called() == [1, 2, 3]


async def test_ai_calls_never_see_urls_and_are_deterministic(registry, settings):
    backend = FakeAIBackend(
        step1=selection_json(VEO_FAST, "video"), step2=STEP2_LINES, step3=STEP3_JSON
    )
    analyzer = make_analyzer(registry, settings, backend)

    await analyzer.analyze("Animate https://x.test/cat.jpg", "job-1")

    for call in backend.calls:
        assert call["deterministic"] is True
        assert "https://x.test" not in call["user_content"]
        assert "https://x.test" not in (call["additional_context"] or "")
        assert "<IMAGE_JPEG_TAG_1/>" in call["user_content"]

    step1, step2, step3 = backend.calls
    assert step1["response_schema"]["properties"]["model"]["enum"] == [
        a.model_id.value for a in registry.list_models()
    ]
    assert step2["response_schema"] is None
    assert "Request JSON schema" in step2["system_instruction"]
    assert "Previous Reasoning" in step2["user_content"]
    assert step3["response_schema"]["properties"]["model"]["enum"] == [VEO_FAST]
    assert "Reasoning Chain" in step3["additional_context"]
    assert "aspectRatio: 9:16 → user requested vertical video" in step3["additional_context"]


async def test_step3_without_model_gets_selected_model(registry, settings):
    body = json.loads(STEP3_JSON)
    del body["model"]
    backend = FakeAIBackend(step1=selection_json(VEO_FAST), step2=STEP2_LINES, step3=json.dumps(body))
    result = await make_analyzer(registry, settings, backend).analyze("a video", "job-1")
    assert result.request["model"] == VEO_FAST


@pytest.mark.parametrize("response", ["", "   ", "not json", "{\"model\": \"x\"}", "{\"model\": \"\", \"reasoning\": [\"r\"]}"])
async def test_step1_failure_aborts_pipeline(registry, settings, response):
    backend = FakeAIBackend(step1=response)
    with pytest.raises(AnalyzerStepError) as exc_info:
        await make_analyzer(registry, settings, backend).analyze("a video", "job-1")
    assert exc_info.value.details["step"] == 1
    assert exc_info.value.code == "AI_ANALYSIS_FAILED"
    assert backend.steps_called() == [1]


async def test_backend_error_becomes_step_error(registry, settings):
    backend = FakeAIBackend(step1=EmptyResponseError("no candidates"))
    with pytest.raises(AnalyzerStepError) as exc_info:
        await make_analyzer(registry, settings, backend).analyze("a video", "job-1")
    assert exc_info.value.details == {"step": 1, "cause": "EMPTY_RESPONSE"}


async def test_unknown_model_from_step1_stops_before_schema_use(registry, settings):
    backend = FakeAIBackend(step1=selection_json("sora-2", "video"))
    with pytest.raises(UnknownModelError):
        await make_analyzer(registry, settings, backend).analyze("a video", "job-1")
    assert backend.steps_called() == [1]


async def test_step2_with_no_lines_fails(registry, settings):
    backend = FakeAIBackend(step1=selection_json(VEO_FAST), step2="\n  \n")
    with pytest.raises(AnalyzerStepError) as exc_info:
        await make_analyzer(registry, settings, backend).analyze("a video", "job-1")
    assert exc_info.value.details["step"] == 2
    assert backend.steps_called() == [1, 2]


@pytest.mark.parametrize("response", ["[1, 2]", "{broken"])
async def test_step3_must_return_json_object(registry, settings, response):
    backend = FakeAIBackend(step1=selection_json(VEO_FAST), step2="a: b → c", step3=response)
    with pytest.raises(AnalyzerStepError) as exc_info:
        await make_analyzer(registry, settings, backend).analyze("a video", "job-1")
    assert exc_info.value.details["step"] == 3


async def test_pinned_model_skips_selection(registry, settings):
    backend = FakeAIBackend(step2=STEP2_LINES, step3=STEP3_JSON)
    result = await make_analyzer(registry, settings, backend).analyze(
        "Animate https://x.test/cat.jpg", "job-1", model=VEO_FAST
    )
    assert backend.steps_called() == [2, 3]
    assert result.reasons[0] == f"Model {VEO_FAST} was specified by the caller"


async def test_unknown_tags_are_reported_not_fatal(registry, settings):
    body = json.loads(STEP3_JSON)
    body["instances"][0]["image"]["gcsUri"] = "<IMAGE_JPEG_TAG_9/>"
    backend = FakeAIBackend(step1=selection_json(VEO_FAST), step2=STEP2_LINES, step3=json.dumps(body))
    result = await make_analyzer(registry, settings, backend).analyze(
        "Animate https://x.test/cat.jpg", "job-1"
    )
    assert result.unknown_tags == ["<IMAGE_JPEG_TAG_9/>"]
    assert result.request["instances"][0]["image"]["gcsUri"] == "<IMAGE_JPEG_TAG_9/>"


async def test_separate_runs_share_no_tag_state(registry, settings):
    backend = FakeAIBackend(
        step1=selection_json(VEO_FAST), step2=STEP2_LINES, step3=lambda kwargs: STEP3_JSON
    )
    analyzer = make_analyzer(registry, settings, backend)
    first = await analyzer.analyze("Animate https://x.test/cat.jpg", "job-1")
    second = await analyzer.analyze("Animate https://y.test/other.jpg", "job-2")
    assert first.request["instances"][0]["image"]["gcsUri"] == "https://x.test/cat.jpg"
    assert second.request["instances"][0]["image"]["gcsUri"] == "https://y.test/other.jpg"


def test_parse_reasoning_lines_trims_and_drops_blanks():
    assert parse_reasoning_lines("  a: 1 → x \n\n\tb: 2 → y\n   ") == ["a: 1 → x", "b: 2 → y"]
