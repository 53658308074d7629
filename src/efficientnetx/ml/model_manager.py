"""Model manager: resolve, load, cache, and evict per-checkpoint models.

Each checkpoint (B0..B7) is loaded on first use, then kept until it has been
idle longer than the configured TTL.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from efficientnetx.errors import ConfigurationError
from efficientnetx.ml.checkpoints import DEFAULT_MODELS_URL, MODEL_FILENAME, resolve, validate_checkpoint
from efficientnetx.ml.decoding import ResultDecoder
from efficientnetx.ml.engine import OnnxModelLoader
from efficientnetx.ml.labels import LabelVocabulary
from efficientnetx.ml.model import EfficientNetModel
from efficientnetx.ml.preprocessing import ImagePreprocessor

if TYPE_CHECKING:
    from collections.abc import Callable

    from efficientnetx.config import Settings
    from efficientnetx.ml.checkpoints import ResolvedCheckpoint
    from efficientnetx.ml.engine import ModelLoader

logger = logging.getLogger(__name__)

_PROGRESS_LOG_STEP = 10


@dataclass
class _CachedModel:
    model: EfficientNetModel
    last_used: float


class CheckpointModelManager:
    """Loads EfficientNet checkpoints on demand and caches them."""

    def __init__(
        self,
        settings: Settings,
        loader: ModelLoader | None = None,
        vocabulary: LabelVocabulary | None = None,
    ) -> None:
        self._settings = settings
        self._loader = loader or OnnxModelLoader(settings)
        self._vocabulary = vocabulary or LabelVocabulary.from_directory(settings.labels_dir)
        self._decoder = ResultDecoder(self._vocabulary)
        self._preprocessor = ImagePreprocessor(
            max_image_pixels=settings.max_image_pixels,
            normalization=settings.normalization,
        )

        self._lock = threading.Lock()
        self._load_locks: dict[int, threading.Lock] = {}
        self._models: dict[int, _CachedModel] = {}

    # -- Public API ---------------------------------------------------------

    @property
    def locales(self) -> list[str]:
        """Locales with a label table."""
        return self._vocabulary.locales

    @property
    def loader_name(self) -> str:
        return type(self._loader).__name__

    def check_configuration(self) -> None:
        """Fail fast on settings that could never serve a request.

        Raises:
            ConfigurationError: If the loader cannot read ``model_filename``,
                the published model tree is paired with a non-published
                filename, or ``default_locale`` has no label table.
        """
        settings = self._settings
        problems: list[str] = []

        suffix = PurePosixPath(settings.model_filename).suffix
        if suffix not in self._loader.supported_suffixes:
            problems.append(
                f"{self.loader_name} cannot read {settings.model_filename!r} "
                f"(supported: {', '.join(self._loader.supported_suffixes)}); "
                "set EFFICIENTNETX_MODEL_FILENAME to a supported graph file"
            )
        elif settings.model_root is None and settings.models_url == DEFAULT_MODELS_URL and (
            settings.model_filename != MODEL_FILENAME
        ):
            problems.append(
                f"{DEFAULT_MODELS_URL} only publishes {MODEL_FILENAME!r} graphs; "
                "set EFFICIENTNETX_MODEL_ROOT or EFFICIENTNETX_MODELS_URL "
                f"to a tree of {settings.model_filename!r} files"
            )

        if settings.default_locale not in self._vocabulary.locales:
            problems.append(
                f"no label table for default locale {settings.default_locale!r} in {settings.labels_dir!r} "
                f"(available: {', '.join(self._vocabulary.locales) or 'none'})"
            )

        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))

    def resolve(self, checkpoint: int) -> ResolvedCheckpoint:
        """Resolve a checkpoint against the configured model root or URL."""
        return resolve(
            checkpoint,
            self._settings.model_root,
            models_url=self._settings.models_url,
            model_filename=self._settings.model_filename,
        )

    def get_model(self, checkpoint: int) -> EfficientNetModel:
        """Return a cached loaded model, loading it if needed.

        Raises:
            InvalidCheckpointError: If ``checkpoint`` is outside [0, 7].
            ModelLoadError: If the checkpoint's graph cannot be loaded.
        """
        ckpt = int(validate_checkpoint(checkpoint))
        cached = self._touch(ckpt)
        if cached is not None:
            return cached

        with self._lock:
            load_lock = self._load_locks.setdefault(ckpt, threading.Lock())

        with load_lock:
            # Another thread may have loaded it while we waited.
            cached = self._touch(ckpt)
            if cached is not None:
                return cached

            resolved = self.resolve(ckpt)
            model = EfficientNetModel(
                resolved.source,
                resolved.resolution,
                loader=self._loader,
                decoder=self._decoder,
                preprocessor=self._preprocessor,
            )
            logger.info("Loading checkpoint B%d from %s", ckpt, resolved.source)
            model.load(_progress_logger(ckpt))

            with self._lock:
                self._models[ckpt] = _CachedModel(model=model, last_used=time.monotonic())
            return model

    def get_loaded_models(self) -> list[int]:
        """Return the checkpoints with a loaded model, in ascending order."""
        with self._lock:
            return sorted(self._models)

    def unload_idle_models(self) -> None:
        """Drop models that have exceeded the configured TTL."""
        ttl = self._settings.model_ttl
        if ttl == 0:
            return

        now = time.monotonic()
        with self._lock:
            expired = [ckpt for ckpt, cached in self._models.items() if (now - cached.last_used) > ttl]
            for ckpt in expired:
                del self._models[ckpt]
                logger.info("Evicted idle checkpoint B%d", ckpt)

    def shutdown(self) -> None:
        """Drop all loaded models."""
        with self._lock:
            self._models.clear()
            logger.info("All models unloaded")

    # -- Internal -----------------------------------------------------------

    def _touch(self, checkpoint: int) -> EfficientNetModel | None:
        with self._lock:
            cached = self._models.get(checkpoint)
            if cached is None:
                return None
            cached.last_used = time.monotonic()
            return cached.model


def _progress_logger(checkpoint: int) -> Callable[[int], None]:
    last_step = -1

    def on_progress(percent: int) -> None:
        nonlocal last_step
        step = percent // _PROGRESS_LOG_STEP
        if step > last_step:
            last_step = step
            logger.info("Checkpoint B%d: %d%% loaded", checkpoint, percent)

    return on_progress
