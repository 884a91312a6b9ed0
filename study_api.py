"""
Study Rooms Problem Generation API — Main Application
FastAPI application that turns study material or a topic prompt into
validated practice problems.
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import os

from openai import AsyncOpenAI
from qdrant_client import QdrantClient

from database.database import Base, create_db_engine, create_session_factory
from database.redis_client import create_redis
from embeddings.generator import EmbeddingGenerator
from embeddings.qdrant_manager import QdrantManager
from generation.config import PipelineSettings
from generation.cost_tracker import CostTracker
from generation.gpt_client import ModelGateway, RetryPolicy
from generation.pipeline import ProblemGenerator
from generation.problem_cache import ProblemCache
from generation.quality_filter import QualityFilterChain
from generation.validator import IndependentValidator
from rag.auto_generate import AutoSeeder
from rag.retrieval import RetrievalEngine
from rag.sample_store import SampleStore

from routers import generation


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables, connect every backing service, wire the pipeline."""
    settings = PipelineSettings.from_env()

    engine = create_db_engine()
    Base.metadata.create_all(bind=engine)
    session_factory = create_session_factory(engine)

    redis_client = create_redis()
    openai_client = AsyncOpenAI(api_key=os.getenv("OPENAI_API_KEY"))

    qdrant = QdrantManager(QdrantClient(
        host=os.getenv("QDRANT_HOST", "localhost"),
        port=int(os.getenv("QDRANT_PORT", "6333")),
    ))
    qdrant.ensure_collection()

    gateway = ModelGateway(
        openai_client,
        model=settings.gpt_model,
        retry_policy=RetryPolicy(max_attempts=settings.max_attempts),
    )
    embedder = EmbeddingGenerator(openai_client, model_name=settings.embedding_model)
    store = SampleStore(session_factory, qdrant, embedder)
    retrieval = RetrievalEngine(store)
    cost_tracker = CostTracker(session_factory)
    validator = IndependentValidator(
        gateway,
        mode=settings.validator_mode,
        sample_rate=settings.validator_sample_rate,
        low_score=settings.validator_low_score,
    )

    app.state.settings = settings
    app.state.cost_tracker = cost_tracker
    app.state.sample_store = store
    app.state.seeder = AutoSeeder(gateway, retrieval, store)
    app.state.generator = ProblemGenerator(
        gateway=gateway,
        retrieval=retrieval,
        cache=ProblemCache(
            redis_client,
            ttl_days=settings.cache_ttl_days,
            samples_version=settings.samples_version,
        ),
        cost_tracker=cost_tracker,
        filter_chain=QualityFilterChain(validator),
        settings=settings,
    )
    yield

    await redis_client.aclose()
    await openai_client.close()
    engine.dispose()


app = FastAPI(
    title="Study Rooms Problem Generation API",
    description="Adaptive LLM pipeline that generates validated practice problems",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(generation.router)


@app.get("/")
def root():
    return {
        "name": "Study Rooms Problem Generation API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "generate": "/generation/problems",
            "samples": "/generation/samples",
            "costs": "/generation/costs/{user_id}",
        },
    }
