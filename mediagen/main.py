"""mediagen - FastAPI application for media generation jobs."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mediagen.analyzer.pipeline import RequestAnalyzer
from mediagen.analyzer.steps import AIBackend
from mediagen.api.v1.deps import Services
from mediagen.api.v1.health import router as health_root_router
from mediagen.api.v1.router import v1_router
from mediagen.config import Settings, initialize
from mediagen.errors import UnknownModelError
from mediagen.jobs.orchestrator import JobOrchestrator
from mediagen.jobs.scheduler import PollScheduler
from mediagen.jobs.store import InMemoryJobStore, JobStore
from mediagen.llm.gemini import GeminiBackend
from mediagen.llm.vertex_client import VertexClient
from mediagen.models.registry import ModelRegistry, build_registry
from mediagen.storage.object_store import GcsObjectStorage, ObjectStorage

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(h, "_mediagen", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._mediagen = True
        root.addHandler(handler)
    root.setLevel(level.upper())


def build_job_store(settings: Settings) -> JobStore:
    if settings.job_store == "supabase":
        from mediagen.db.supabase_client import get_supabase
        from mediagen.jobs.supabase_store import SupabaseJobStore

        return SupabaseJobStore(get_supabase(settings), table=settings.jobs_table)
    return InMemoryJobStore()


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[JobStore] = None,
    registry: Optional[ModelRegistry] = None,
    ai_backend: Optional[AIBackend] = None,
    storage: Optional[ObjectStorage] = None,
) -> FastAPI:
    """Build the application. Collaborators not passed in are built from settings."""
    settings = settings or initialize()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting mediagen on %s:%s", settings.host, settings.port)
        vertex = None
        if registry is None or ai_backend is None:
            vertex = VertexClient.from_settings(settings)

        object_storage = storage or GcsObjectStorage(settings.output_bucket)
        job_store = store or build_job_store(settings)
        model_registry = registry or build_registry(vertex, object_storage)
        backend = ai_backend or GeminiBackend(
            vertex,
            model=settings.analyzer_model,
            seed=settings.analyzer_seed,
            max_output_tokens=settings.analyzer_max_output_tokens,
        )
        logger.info("Registered %s model(s): %s", len(model_registry.model_ids()), model_registry.model_ids())

        analyzer = RequestAnalyzer.from_settings(backend, model_registry, settings)
        orchestrator = JobOrchestrator(job_store, model_registry, analyzer, object_storage, settings)
        scheduler = PollScheduler(job_store, model_registry, object_storage, settings)
        app.state.services = Services(
            settings=settings,
            store=job_store,
            registry=model_registry,
            orchestrator=orchestrator,
            scheduler=scheduler,
        )

        if settings.run_sweep_loop:
            await scheduler.start()
            logger.info("Sweep loop started (every %ss)", settings.sweep_interval_seconds)

        yield

        logger.info("Shutting down mediagen")
        await scheduler.stop()
        if vertex is not None:
            await vertex.close()

    app = FastAPI(
        title="mediagen",
        description="Media generation jobs over Vertex AI models",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(UnknownModelError)
    async def unknown_model_handler(request: Request, exc: UnknownModelError):
        return JSONResponse(status_code=404, content=exc.to_record())

    app.include_router(health_root_router, tags=["health"])  # GET /health at root
    app.include_router(v1_router)  # All /api/v1/* endpoints
    return app


def run() -> None:
    """Serve the app with uvicorn on the configured host and port."""
    import uvicorn

    settings = initialize()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
