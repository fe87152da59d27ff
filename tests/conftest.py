import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from mediagen.analyzer.pipeline import RequestAnalyzer
from mediagen.config import Settings
from mediagen.jobs.orchestrator import JobOrchestrator
from mediagen.jobs.scheduler import PollScheduler
from mediagen.jobs.store import InMemoryJobStore
from mediagen.llm.vertex_client import VertexClient
from mediagen.main import create_app
from mediagen.models.base import ModelId
from mediagen.models.registry import ModelRegistry
from tests.fakes import (
    FakeAIBackend,
    FakeClock,
    FakeObjectStorage,
    ScriptedOperations,
    fake_image_adapter,
    fake_video_adapter,
)

VERTEX_MODELS = (
    "https://us-central1-aiplatform.googleapis.com/v1/"
    "projects/test-project/locations/us-central1/publishers/google/models"
)


def make_settings(**overrides) -> Settings:
    values = dict(
        gcp_project_id="test-project",
        gcp_region="us-central1",
        vertex_access_token="test-token",
        output_bucket="test-bucket",
        job_store="memory",
        run_sweep_loop=False,
        poll_interval_seconds=1.0,
        poll_concurrency=150,
        poll_timeout_seconds=60.0,
        job_ttl_minutes=90,
        log_level="DEBUG",
    )
    values.update(overrides)
    return Settings(**values)


def make_fake_registry(ops: ScriptedOperations, storage: FakeObjectStorage, image_calls=None) -> ModelRegistry:
    return ModelRegistry(
        [fake_video_adapter(ops), fake_image_adapter(storage, image_calls)],
        required=[ModelId.VEO_31_FAST, ModelId.GEMINI_25_FLASH_IMAGE],
    )


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return FakeObjectStorage()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def ops():
    return ScriptedOperations()


@pytest.fixture
def image_calls():
    return []


@pytest.fixture
def registry(ops, storage, image_calls):
    return make_fake_registry(ops, storage, image_calls)


@pytest.fixture
def ai_backend():
    return FakeAIBackend()


@pytest.fixture
def orchestrator(store, registry, ai_backend, storage, settings, clock):
    analyzer = RequestAnalyzer.from_settings(ai_backend, registry, settings)
    return JobOrchestrator(store, registry, analyzer, storage, settings, clock=clock)


@pytest.fixture
def scheduler(store, registry, storage, settings, clock):
    return PollScheduler(store, registry, storage, settings, clock=clock)


@pytest.fixture
async def vertex():
    client = VertexClient("test-project", region="us-central1", access_token="test-token")
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture
def app_factory(store, registry, storage):
    def _factory(*, ai_backend=None, **settings_overrides):
        settings = make_settings(**settings_overrides)
        backend = ai_backend or FakeAIBackend()
        app = create_app(
            settings,
            store=store,
            registry=registry,
            ai_backend=backend,
            storage=storage,
        )
        return app, backend

    return _factory


@pytest.fixture
async def client(app_factory):
    app, backend = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.fake_ai = backend  # type: ignore[attr-defined]
            yield http_client
