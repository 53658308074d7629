"""Pydantic request/response schemas for the EfficientNetX API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PredictionSchema(BaseModel):
    """A single ranked class prediction."""

    label: str
    score: float = Field(description="Raw model score for the class")


class ClassifyImageResponse(BaseModel):
    """Response for the image classification endpoint."""

    checkpoint: int = Field(description="Checkpoint used (0 = B0 ... 7 = B7)")
    resolution: int = Field(description="Square input resolution of the checkpoint")
    predictions: list[PredictionSchema]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[int]
    concurrent_requests: int
    queue_depth: int


class CheckpointInfo(BaseModel):
    """Information about one EfficientNet checkpoint."""

    checkpoint: int
    name: str = Field(description="Variant name, e.g. 'B0'")
    resolution: int
    source: str = Field(description="URL or local path of the serialized graph")
    status: str = Field(description="Checkpoint status: 'loaded' or 'available'")


class CheckpointsResponse(BaseModel):
    """Response for the checkpoint listing endpoint."""

    checkpoints: list[CheckpointInfo]
    locales: list[str]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
