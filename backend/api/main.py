import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from gdt.interpreter import FcfInterpreter
from models.ollama import OllamaClient

from .routes import router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(levelname)s:%(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    app.state.settings = settings
    app.state.ollama = OllamaClient(
        base_url=settings.ollama_base_url,
        extraction_model=settings.extraction_model,
        explanation_model=settings.explanation_model,
        timeout=settings.ollama_timeout_seconds,
    )
    app.state.interpreter = FcfInterpreter(
        extractor=app.state.ollama,
        explainer=app.state.ollama,
        settings=settings,
    )

    try:
        await app.state.ollama.health_check()
        logger.info("Ollama connected at %s", settings.ollama_base_url)
    except Exception as e:
        logger.warning("Ollama not available: %s -- direct FCF input still works", e)

    yield

    # --- Shutdown ---
    await app.state.ollama.close()


app = FastAPI(
    title="DatumPilot",
    description="GD&T feature control frame interpretation: validation, tolerance math, explanations",
    version="0.1.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")
