"""Environment-based configuration for EfficientNetX."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from efficientnetx.ml.checkpoints import DEFAULT_MODELS_URL


class Settings(BaseSettings):
    """Application settings loaded from EFFICIENTNETX_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EFFICIENTNETX_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # ONNX Runtime threading
    intra_op_threads: int = Field(default=0, ge=0)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=20_971_520, ge=1)

    # Checkpoints (model_root set = load from local disk instead of models_url).
    # Graphs live at <source>/B<n>/<model_filename>; the bundled loader reads ONNX.
    default_checkpoint: int = Field(default=0, ge=0, le=7)
    models_url: str = DEFAULT_MODELS_URL
    model_root: str | None = None
    model_filename: str = "model.onnx"
    model_ttl: int = Field(default=0, ge=0)
    download_timeout: float = Field(default=60.0, gt=0)

    # Decoding
    labels_dir: str = "labels"
    default_top_k: int = Field(default=3, ge=1)
    default_locale: str = "en"
    normalization: Literal["reference", "standard"] = "reference"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
