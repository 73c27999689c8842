"""CourseForge FastAPI application entry point.

Wires providers, services and the generation orchestrator together via
dependency injection, loads configuration from ``.env`` and
``config/config.yaml``, and configures structured logging.

``build_pipeline`` exposes the same wiring without the web server for
scripting; provider selection itself lives in ``src.providers.factory``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.api.websocket import websocket_job_events
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.rerank_provider import IRerankProvider
from src.models.pipeline import GenerationConfig
from src.models.rag import RetrievalTuning
from src.pipeline.event_publisher import EventStreamPublisher
from src.pipeline.job_runner import PipelineDependencies
from src.pipeline.orchestrator import GenerationOrchestrator
from src.providers.factory import (
    build_embedding_provider,
    build_index_client,
    build_llm_provider,
    build_reranker,
    build_vector_store,
)
from src.providers.persistence.sqlite_persistence_provider import SQLitePersistenceProvider
from src.services.course_assembler import CourseAssembler
from src.services.generation_service import GenerationService
from src.services.ingestion.chunker import TextChunker
from src.services.retrieval import HybridRetrievalEngine
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


def default_generation_config(app_config: dict[str, Any]) -> GenerationConfig:
    """The ``generation:`` section of config.yaml as a GenerationConfig."""
    return GenerationConfig.model_validate(app_config.get("generation") or {})


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_pipeline(
    app_settings: Settings | None = None,
    app_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Construct the stateless pipeline collaborators.

    Returns a flat dict of named components; :func:`_build_all` adds the
    orchestrator and API-only metadata on top.
    """
    app_settings = app_settings or settings
    app_config = app_config if app_config is not None else config

    llm = build_llm_provider(app_settings)
    embedding = build_embedding_provider(app_settings)
    vector_store = build_vector_store(app_settings)
    reranker = build_reranker(app_settings)
    persistence = SQLitePersistenceProvider(db_path=app_settings.persistence_db_path)

    index_client = build_index_client(app_settings, embedding=embedding, vector_store=vector_store)
    tuning = RetrievalTuning.model_validate(app_config.get("retrieval") or {})
    retriever = HybridRetrievalEngine(
        index_client=index_client,
        reranker=reranker,
        tuning=tuning,
        rerank_timeout_seconds=app_settings.rerank_timeout_seconds,
    )
    default_config = default_generation_config(app_config)

    deps = PipelineDependencies(
        chunker=TextChunker(),
        index_client=index_client,
        retriever=retriever,
        generator=GenerationService(
            llm_provider=llm, timeout_seconds=default_config.generation_timeout_seconds
        ),
        assembler=CourseAssembler(),
        persistence=persistence,
        collection_prefix=app_settings.chromadb_collection_prefix,
        max_concurrent_chunking=app_settings.max_concurrent_chunking,
    )
    return {
        "llm": llm,
        "embedding": embedding,
        "vector_store": vector_store,
        "reranker": reranker,
        "persistence": persistence,
        "index_client": index_client,
        "retriever": retriever,
        "deps": deps,
        "default_config": default_config,
    }


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every component stored on ``app.state``."""
    components = build_pipeline(app_settings, config)

    publisher = EventStreamPublisher(
        buffer_size=app_settings.event_buffer_size,
        closed_job_ttl=float(app_settings.job_retention_seconds),
    )
    orchestrator = GenerationOrchestrator(
        deps=components["deps"],
        publisher=publisher,
        default_config=components["default_config"],
        retention_seconds=float(app_settings.job_retention_seconds),
    )

    reranker: IRerankProvider | None = components["reranker"]
    provider_registry: dict[str, Any] = {
        "llm": components["llm"].is_available(),
        "llm_provider": components["llm"].get_provider_name(),
        "embedding": components["embedding"].is_available(),
        "embedding_provider": components["embedding"].get_provider_name(),
        "vector_store": components["vector_store"].get_provider_name(),
        "rerank": reranker is not None and reranker.is_available(),
        "persistence": components["persistence"].get_provider_name(),
    }
    return {
        **components,
        "publisher": publisher,
        "orchestrator": orchestrator,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build components and prepare storage on startup; stop running jobs on shutdown."""
    components = _build_all(settings)
    for key, value in components.items():
        setattr(application.state, key, value)

    await components["persistence"].initialize()

    _logger.info(
        "app_startup",
        version=config.get("app", {}).get("version", "0.1.0"),
        environment=settings.app_env,
        llm=components["provider_registry"]["llm_provider"],
        embedding=components["provider_registry"]["embedding_provider"],
        rerank=components["provider_registry"]["rerank"],
    )

    yield

    orchestrator: GenerationOrchestrator = components["orchestrator"]
    await orchestrator.shutdown()
    _logger.info("app_shutdown")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="CourseForge API",
        version="0.1.0",
        description=(
            "Turn a course's documents into a structured, quality-scored course "
            "draft, with live progress over WebSocket."
        ),
        lifespan=_lifespan,
    )

    # Last added runs first.
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config.get("cors", {}).get("allowed_origins"))

    application.include_router(api_router)

    @application.websocket("/ws/jobs/{job_id}")
    async def ws_job_events(websocket: WebSocket, job_id: str) -> None:
        await websocket_job_events(websocket, job_id)

    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
