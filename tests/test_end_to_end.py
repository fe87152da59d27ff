import json

import respx
from httpx import Response

from mediagen.analyzer.pipeline import RequestAnalyzer
from mediagen.jobs.models import JobStatus
from mediagen.jobs.orchestrator import JobOrchestrator
from mediagen.jobs.scheduler import PollScheduler
from mediagen.jobs.store import InMemoryJobStore
from mediagen.models.registry import build_registry
from tests.conftest import VERTEX_MODELS
from tests.fakes import FakeAIBackend, FakeObjectStorage, selection_json

VEO_FAST = "veo-3.1-fast-generate-preview"
PROMPT = "Generate a video of a cat playing piano, 16:9"
OPERATION = f"projects/test-project/locations/us-central1/publishers/google/models/{VEO_FAST}/operations/op-42"


def step3(kwargs):
    assert "aspectRatio: 16:9 → user requested 16:9" in kwargs["additional_context"]
    return json.dumps(
        {
            "model": VEO_FAST,
            "instances": [{"prompt": "A cat playing piano"}],
            "parameters": {"aspectRatio": "16:9", "durationSeconds": "8"},
        }
    )


async def test_cat_piano_prompt_to_succeeded_job(vertex, settings, clock):
    storage = FakeObjectStorage()
    store = InMemoryJobStore()
    registry = build_registry(vertex, storage)
    backend = FakeAIBackend(
        step1=selection_json(
            VEO_FAST,
            "The user asks for a video: temporal content with movement over time",
            "The fast Veo model is the default for video",
        ),
        step2=(
            "instances[0].prompt: A cat playing piano → user description\n"
            "aspectRatio: 16:9 → user requested 16:9\n"
            "durationSeconds: 8 → Default duration for short videos\n"
        ),
        step3=step3,
    )
    orchestrator = JobOrchestrator(
        store, registry, RequestAnalyzer.from_settings(backend, registry, settings), storage, settings, clock=clock
    )
    scheduler = PollScheduler(store, registry, storage, settings, clock=clock)

    with respx.mock(assert_all_called=True) as respx_mock:
        start_route = respx_mock.post(f"{VERTEX_MODELS}/{VEO_FAST}:predictLongRunning").mock(
            return_value=Response(200, json={"name": OPERATION})
        )
        poll_route = respx_mock.post(f"{VERTEX_MODELS}/{VEO_FAST}:fetchPredictOperation").mock(
            side_effect=[
                Response(200, json={"name": OPERATION}),
                Response(200, json={"name": OPERATION, "done": False}),
                Response(
                    200,
                    json={
                        "name": OPERATION,
                        "done": True,
                        "response": {
                            "@type": "type.googleapis.com/cloud.ai.large_models.vision.GenerateVideoResponse",
                            "videos": [
                                {
                                    "gcsUri": "gs://test-bucket/mediagen-jobs/x/sample_0.mp4",
                                    "mimeType": "video/mp4",
                                }
                            ],
                        },
                    },
                ),
            ]
        )

        job = await orchestrator.submit(prompt=PROMPT)

        # Step 1 chose the video model and explained why
        assert job.model == VEO_FAST
        assert any("temporal content" in r for r in job.reasons)
        assert "aspectRatio: 16:9 → user requested 16:9" in job.reasons
        assert any(r.startswith("durationSeconds: 8") for r in job.reasons)

        # Step 3 request, with the default duration coerced to a number
        assert job.request["parameters"]["aspectRatio"] == "16:9"
        assert job.request["parameters"]["durationSeconds"] == 8

        # start returned an operation handle
        assert job.status == JobStatus.RUNNING
        assert job.operation_handle == OPERATION
        start_body = json.loads(start_route.calls.last.request.content)
        assert start_body["parameters"]["storageUri"] == f"gs://test-bucket/mediagen-jobs/{job.id}/"

        # Sweeps poll until done
        sweeps = 0
        while (await store.get(job.id)).status == JobStatus.RUNNING and sweeps < 10:
            await scheduler.sweep()
            clock.advance(settings.poll_interval_seconds)
            sweeps += 1

    final = await store.get(job.id)
    assert sweeps == 3
    assert poll_route.call_count == 3
    assert final.status == JobStatus.SUCCEEDED
    assert final.attempt == 3
    assert final.operation_handle is None
    assert final.response["uri"] == "gs://test-bucket/mediagen-jobs/x/sample_0.mp4"
    assert len(final.files) == 1
    file0 = final.files["file0.mp4"]
    assert file0.gs == "gs://test-bucket/mediagen-jobs/x/sample_0.mp4"
    assert file0.https.startswith("https://signed.test/")
    assert file0.mime_type == "video/mp4"
    assert backend.steps_called() == [1, 2, 3]


async def test_unknown_model_fails_before_any_ai_or_backend_call(vertex, settings, clock):
    storage = FakeObjectStorage()
    store = InMemoryJobStore()
    registry = build_registry(vertex, storage)
    backend = FakeAIBackend()
    orchestrator = JobOrchestrator(
        store, registry, RequestAnalyzer.from_settings(backend, registry, settings), storage, settings, clock=clock
    )

    with respx.mock(assert_all_called=False) as respx_mock:
        route = respx_mock.route(url__startswith=VERTEX_MODELS).mock(return_value=Response(200, json={}))
        job = await orchestrator.submit(prompt=PROMPT, model="imagen-9")

    assert job.status == JobStatus.FAILED
    assert job.error.code == "UNKNOWN_MODEL"
    assert backend.calls == []
    assert not route.called
