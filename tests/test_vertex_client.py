import json

import pytest
import respx
from httpx import Response

from mediagen.errors import BackendError, EmptyResponseError
from mediagen.llm.gemini import GeminiBackend, blocked_reason, find_inline_part, first_candidate_text
from mediagen.llm.vertex_client import AdcTokenProvider, VertexClient
from tests.conftest import VERTEX_MODELS


async def test_generate_content_sends_bearer_token_and_payload(vertex):
    captured = {}
    with respx.mock(assert_all_called=True) as respx_mock:

        def handler(request):
            captured["auth"] = request.headers["Authorization"]
            captured["json"] = json.loads(request.content.decode("utf-8"))
            return Response(200, json={"candidates": []})

        respx_mock.post(f"{VERTEX_MODELS}/gemini-2.5-flash-lite:generateContent").mock(side_effect=handler)
        data = await vertex.generate_content("gemini-2.5-flash-lite", {"contents": []})

    assert data == {"candidates": []}
    assert captured["auth"] == "Bearer test-token"
    assert captured["json"] == {"contents": []}


async def test_http_error_becomes_backend_error(vertex):
    with respx.mock() as respx_mock:
        respx_mock.post(f"{VERTEX_MODELS}/veo-3.1-generate-preview:predictLongRunning").mock(
            return_value=Response(
                400,
                json={"error": {"code": 400, "message": "bad aspect ratio", "status": "INVALID_ARGUMENT"}},
            )
        )
        with pytest.raises(BackendError) as exc_info:
            await vertex.predict_long_running("veo-3.1-generate-preview", {"instances": []})

    err = exc_info.value
    assert err.code == "BACKEND_ERROR"
    assert err.details["status"] == 400
    assert "bad aspect ratio" in err.message


async def test_predict_long_running_returns_operation_name(vertex):
    with respx.mock() as respx_mock:
        respx_mock.post(f"{VERTEX_MODELS}/veo-3.1-generate-preview:predictLongRunning").mock(
            return_value=Response(200, json={"name": "operations/op-1"})
        )
        name = await vertex.predict_long_running("veo-3.1-generate-preview", {"instances": []})
    assert name == "operations/op-1"


async def test_predict_long_running_without_name_is_backend_error(vertex):
    with respx.mock() as respx_mock:
        respx_mock.post(f"{VERTEX_MODELS}/veo-3.1-generate-preview:predictLongRunning").mock(
            return_value=Response(200, json={})
        )
        with pytest.raises(BackendError):
            await vertex.predict_long_running("veo-3.1-generate-preview", {"instances": []})


async def test_fetch_predict_operation_posts_operation_name(vertex):
    captured = {}
    with respx.mock() as respx_mock:

        def handler(request):
            captured["json"] = json.loads(request.content.decode("utf-8"))
            return Response(200, json={"name": "operations/op-1", "done": False})

        respx_mock.post(f"{VERTEX_MODELS}/veo-3.1-generate-preview:fetchPredictOperation").mock(side_effect=handler)
        op = await vertex.fetch_predict_operation("veo-3.1-generate-preview", "operations/op-1")
    assert op["done"] is False
    assert captured["json"] == {"operationName": "operations/op-1"}


async def test_token_provider_used_without_static_token():
    client = VertexClient("test-project", token_provider=lambda: "adc-token")
    try:
        with respx.mock() as respx_mock:
            route = respx_mock.post(f"{VERTEX_MODELS}/m:generateContent").mock(
                return_value=Response(200, json={})
            )
            await client.generate_content("m", {})
        assert route.calls.last.request.headers["Authorization"] == "Bearer adc-token"
    finally:
        await client.close()


async def test_gemini_payload_is_deterministic_and_json_constrained(vertex):
    backend = GeminiBackend(vertex, model="gemini-2.5-flash-lite", seed=7, max_output_tokens=100)
    payload = backend.build_payload(
        "system",
        "user prompt",
        additional_context="context",
        response_schema={"type": "object"},
        deterministic=True,
    )
    config = payload["generationConfig"]
    assert config["temperature"] == 0
    assert config["topK"] == 1
    assert config["candidateCount"] == 1
    assert config["seed"] == 7
    assert config["maxOutputTokens"] == 100
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == {"type": "object"}
    assert payload["systemInstruction"] == {"parts": [{"text": "system"}]}
    assert payload["contents"][0]["parts"] == [{"text": "user prompt"}, {"text": "context"}]


async def test_gemini_text_mode_has_no_response_schema(vertex):
    payload = GeminiBackend(vertex).build_payload("system", "user")
    assert "responseMimeType" not in payload["generationConfig"]
    assert payload["contents"][0]["parts"] == [{"text": "user"}]


async def test_gemini_call_returns_candidate_text(vertex):
    with respx.mock() as respx_mock:
        respx_mock.post(f"{VERTEX_MODELS}/gemini-2.5-flash-lite:generateContent").mock(
            return_value=Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "hel"}, {"text": "lo"}]}}]}
            )
        )
        text = await GeminiBackend(vertex).call("system", "user")
    assert text == "hello"


async def test_gemini_call_with_no_text_raises(vertex):
    with respx.mock() as respx_mock:
        respx_mock.post(f"{VERTEX_MODELS}/gemini-2.5-flash-lite:generateContent").mock(
            return_value=Response(200, json={"candidates": [{"content": {"parts": []}}]})
        )
        with pytest.raises(EmptyResponseError):
            await GeminiBackend(vertex).call("system", "user")


def test_response_helpers():
    response = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "caption"},
                        {"inlineData": {"mimeType": "image/png", "data": "aGk="}},
                    ]
                },
                "finishReason": "STOP",
            }
        ]
    }
    assert first_candidate_text(response) == "caption"
    assert find_inline_part(response, "image/")["data"] == "aGk="
    assert find_inline_part(response, "audio/") is None
    assert blocked_reason(response) is None
    assert blocked_reason({"promptFeedback": {"blockReason": "SAFETY"}}) == "SAFETY"


class FakeCredentials:
    def __init__(self):
        self.valid = False
        self.token = None
        self.refreshes = 0

    def refresh(self, request):
        self.refreshes += 1
        self.token = f"adc-{self.refreshes}"
        self.valid = True


def test_adc_credentials_are_resolved_once_and_refreshed_when_invalid(monkeypatch):
    import google.auth

    creds = FakeCredentials()
    lookups = []

    def fake_default(scopes=None):
        lookups.append(scopes)
        return creds, "test-project"

    monkeypatch.setattr(google.auth, "default", fake_default)
    provider = AdcTokenProvider()

    assert provider() == "adc-1"
    assert provider() == "adc-1"
    assert creds.refreshes == 1

    creds.valid = False
    assert provider() == "adc-2"
    assert lookups == [["https://www.googleapis.com/auth/cloud-platform"]]


async def test_predict_posts_to_predict_endpoint(vertex):
    with respx.mock() as respx_mock:
        route = respx_mock.post(f"{VERTEX_MODELS}/imagen-4.0-generate-001:predict").mock(
            return_value=Response(200, json={"predictions": []})
        )
        data = await vertex.predict("imagen-4.0-generate-001", {"instances": [{"prompt": "x"}]})
    assert data == {"predictions": []}
    assert json.loads(route.calls.last.request.content) == {"instances": [{"prompt": "x"}]}
