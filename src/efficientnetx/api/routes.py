"""API route definitions."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from efficientnetx.api.middleware import verify_api_key
from efficientnetx.api.schemas import (
    CheckpointInfo,
    CheckpointsResponse,
    ClassifyImageResponse,
    ErrorResponse,
    HealthResponse,
    PredictionSchema,
)
from efficientnetx.ml.checkpoints import EfficientNetCheckpoint
from efficientnetx.ml.model import InferenceRequest

if TYPE_CHECKING:
    from efficientnetx.config import Settings
    from efficientnetx.ml.inference import InferencePool
    from efficientnetx.ml.model_manager import CheckpointModelManager

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

_TOO_LARGE = int(HTTPStatus.REQUEST_ENTITY_TOO_LARGE)


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_manager(request: Request) -> CheckpointModelManager:
    manager: CheckpointModelManager = request.app.state.model_manager
    return manager


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        _TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify an image with ranked labels",
)
async def classify_image(
    request: Request,
    file: UploadFile,
    checkpoint: int | None = None,
    top_k: int | None = None,
    locale: str | None = None,
) -> ClassifyImageResponse:
    """Classify an uploaded image and return the top-K labels."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    manager = _get_model_manager(request)

    image_bytes = await file.read(settings.max_file_size + 1)
    if len(image_bytes) > settings.max_file_size:
        raise HTTPException(
            status_code=_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    if checkpoint is None:
        checkpoint = settings.default_checkpoint

    manager.unload_idle_models()
    model = await pool.run(manager.get_model, checkpoint)
    inference_request = InferenceRequest(
        image=image_bytes,
        top_k=settings.default_top_k if top_k is None else top_k,
        locale=locale or settings.default_locale,
    )
    predictions = await pool.classify(model, inference_request)

    return ClassifyImageResponse(
        checkpoint=checkpoint,
        resolution=model.resolution,
        predictions=[PredictionSchema(label=p.label, score=p.score) for p in predictions],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    manager = _get_model_manager(request)
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=manager.get_loaded_models(),
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/checkpoints",
    response_model=CheckpointsResponse,
    summary="List EfficientNet checkpoints",
)
async def list_checkpoints(request: Request) -> CheckpointsResponse:
    """Return every checkpoint with its resolution, source, and load status."""
    manager = _get_model_manager(request)
    loaded = set(manager.get_loaded_models())

    checkpoints: list[CheckpointInfo] = []
    for ckpt in EfficientNetCheckpoint:
        resolved = manager.resolve(ckpt)
        checkpoints.append(
            CheckpointInfo(
                checkpoint=int(ckpt),
                name=ckpt.name,
                resolution=resolved.resolution,
                source=str(resolved.source),
                status="loaded" if int(ckpt) in loaded else "available",
            )
        )

    return CheckpointsResponse(checkpoints=checkpoints, locales=manager.locales)
