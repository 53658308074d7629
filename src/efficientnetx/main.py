"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from efficientnetx import __version__
from efficientnetx.api.middleware import register_exception_handlers
from efficientnetx.api.routes import router
from efficientnetx.config import get_settings
from efficientnetx.ml.inference import InferencePool
from efficientnetx.ml.model_manager import CheckpointModelManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    model_manager = CheckpointModelManager(settings)
    logger.info(
        "Starting EfficientNetX (device=%s, max_concurrent=%s, default_checkpoint=B%s, "
        "loader=%s, graph=%s, source=%s)",
        settings.device,
        settings.max_concurrent,
        settings.default_checkpoint,
        model_manager.loader_name,
        settings.model_filename,
        settings.model_root or settings.models_url,
    )
    model_manager.check_configuration()

    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool
    app.state.model_manager = model_manager

    logger.info("EfficientNetX ready (locales: %s)", ", ".join(model_manager.locales) or "none")
    yield

    logger.info("Shutting down EfficientNetX")
    model_manager.shutdown()
    inference_pool.shutdown()
    logger.info("EfficientNetX shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="EfficientNetX",
        description="EfficientNet image classification API with locale-aware top-K labels",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(router)
    return application


app = create_app()
