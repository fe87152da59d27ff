import json

from tests.fakes import image_request, selection_json, veo_request

VEO_FAST = "veo-3.1-fast-generate-preview"


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["models"] == 2
    assert body["job_store"] == "memory"

    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200


async def test_list_models(client):
    resp = await client.get("/api/v1/models")
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 2
    by_id = {m["model_id"]: m for m in body["models"]}
    assert by_id[VEO_FAST]["async"] is True
    assert by_id[VEO_FAST]["kind"] == "video"
    assert by_id["gemini-2.5-flash-image"]["async"] is False

    resp = await client.get("/api/v1/models", params={"kind": "image"})
    assert [m["model_id"] for m in resp.json()["models"]] == ["gemini-2.5-flash-image"]


async def test_model_schema_and_unknown_model(client):
    resp = await client.get(f"/api/v1/models/{VEO_FAST}/schema")
    assert resp.status_code == 200
    assert "instances" in resp.json()["schema"]["properties"]

    resp = await client.get("/api/v1/models/sora-2/schema")
    assert resp.status_code == 404
    assert resp.json()["code"] == "UNKNOWN_MODEL"


async def test_submit_sync_job_returns_succeeded_snapshot(client):
    resp = await client.post("/api/v1/jobs", json={"request": image_request()})
    assert resp.status_code == 200
    job = resp.json()
    assert job["status"] == "succeeded"
    assert job["files"]["file0.png"]["gs"].endswith("image-gemini-2.5-flash-image.png")

    resp = await client.get(f"/api/v1/jobs/{job['id']}")
    assert resp.status_code == 200
    assert resp.json()["status"] == "succeeded"


async def test_submit_with_model_field_fills_request_model(client):
    request = veo_request()
    del request["model"]
    resp = await client.post("/api/v1/jobs", json={"model": VEO_FAST, "request": request})
    job = resp.json()
    assert job["status"] == "running"
    assert job["request"]["model"] == VEO_FAST


async def test_invalid_and_unknown_requests_become_failed_jobs(client):
    resp = await client.post("/api/v1/jobs", json={"request": veo_request(durationSeconds=3)})
    assert resp.status_code == 200
    assert resp.json()["status"] == "failed"
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    resp = await client.post("/api/v1/jobs", json={"model": "sora-2", "prompt": "a video"})
    assert resp.status_code == 200
    assert resp.json()["error"]["code"] == "UNKNOWN_MODEL"
    assert client.fake_ai.calls == []


async def test_submit_body_needs_request_or_prompt(client):
    resp = await client.post("/api/v1/jobs", json={})
    assert resp.status_code == 422
    resp = await client.post("/api/v1/jobs", json={"prompt": "x", "request": image_request()})
    assert resp.status_code == 422


async def test_assisted_submit_runs_analyzer(client):
    fake = client.fake_ai
    fake.scripts[1] = selection_json(VEO_FAST, "temporal content")
    fake.scripts[2] = "aspectRatio: 16:9 → default"
    fake.scripts[3] = json.dumps(veo_request())

    resp = await client.post("/api/v1/jobs", json={"prompt": "a cat playing piano"})
    job = resp.json()
    assert job["status"] == "running"
    assert job["ai_assisted"] is True
    assert job["reasons"] == ["temporal content", "aspectRatio: 16:9 → default"]


async def test_sweep_endpoint_and_cancel(client):
    job = (await client.post("/api/v1/jobs", json={"request": veo_request()})).json()
    assert job["status"] == "running"

    resp = await client.post("/api/v1/poller/sweep")
    assert resp.status_code == 200
    report = resp.json()
    assert report["eligible"] == 1
    assert report["pending"] == 1

    resp = await client.post(f"/api/v1/jobs/{job['id']}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "canceled"
    assert resp.json()["operation_handle"] is None


async def test_missing_job_is_404(client):
    assert (await client.get("/api/v1/jobs/nope")).status_code == 404
    assert (await client.post("/api/v1/jobs/nope/cancel")).status_code == 404
