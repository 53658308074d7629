"""EfficientNet model orchestration.

``EfficientNetModel`` owns one loaded inference engine and the input
resolution it was trained at, and runs every inference call through
decode -> preprocess -> predict -> top-K decode.

Lifecycle: construct, ``load()`` once, then call ``inference()`` / ``classify()``
as often as needed, from any thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from efficientnetx.errors import ModelLoadError, ModelNotLoadedError
from efficientnetx.ml.checkpoints import DEFAULT_MODELS_URL, MODEL_FILENAME, resolve
from efficientnetx.ml.decoding import validate_top_k
from efficientnetx.ml.preprocessing import ImagePreprocessor

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from efficientnetx.ml.checkpoints import ModelSource
    from efficientnetx.ml.decoding import Prediction, ResultDecoder
    from efficientnetx.ml.engine import InferenceEngine, ModelLoader
    from efficientnetx.ml.preprocessing import ImageSource

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
DEFAULT_LOCALE = "en"


@dataclass(frozen=True)
class InferenceRequest:
    """One inference call: the image plus decoding options."""

    image: ImageSource
    top_k: int = DEFAULT_TOP_K
    locale: str = DEFAULT_LOCALE


class _ProgressReporter:
    """Turns loader fractions into monotonic integer percentages."""

    def __init__(self, observer: Callable[[int], None] | None) -> None:
        self._observer = observer
        self._last = -1

    def __call__(self, percent: float) -> None:
        value = max(0, min(100, int(percent)))
        if self._observer is None or value <= self._last:
            return
        self._last = value
        self._observer(value)


class EfficientNetModel:
    """A checkpoint's inference engine bound to its input resolution."""

    def __init__(
        self,
        source: ModelSource,
        resolution: int,
        *,
        loader: ModelLoader,
        decoder: ResultDecoder,
        preprocessor: ImagePreprocessor | None = None,
    ) -> None:
        self.source = source
        self.resolution = resolution
        self._loader = loader
        self._decoder = decoder
        self._preprocessor = preprocessor or ImagePreprocessor()
        self._engine: InferenceEngine | None = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._engine is not None

    def load(self, on_progress: Callable[[int], None] | None = None) -> None:
        """Retrieve and deserialize the model graph.

        Meant to be called once. The engine is only published after a
        successful load, so concurrent ``inference()`` calls keep failing with
        ``ModelNotLoadedError`` until then.

        Args:
            on_progress: Optional observer, called with increasing integer
                percentages starting at 0 and ending at 100.

        Raises:
            ModelLoadError: If the graph cannot be retrieved or deserialized.
        """
        with self._load_lock:
            report = _ProgressReporter(on_progress)
            report(0)
            try:
                engine = self._loader.load(self.source, lambda fraction: report(fraction * 100))
            except ModelLoadError:
                logger.exception("Failed to load model from %s", self.source)
                raise
            except Exception as exc:
                logger.exception("Failed to load model from %s", self.source)
                raise ModelLoadError(f"Cannot load model from {self.source}: {exc}") from exc
            report(100)
            self._engine = engine
            logger.info("Loaded model from %s (input %dpx)", self.source, self.resolution)

    def inference(self, request: InferenceRequest) -> list[Prediction]:
        """Classify an image.

        Raises:
            ModelNotLoadedError: If ``load()`` has not completed successfully.
            InvalidTopKError: If ``request.top_k`` is not positive.
            ImageDecodeError: If the image cannot be decoded.
            InvalidImageDimensionsError: If the image cannot be center-cropped.
            UnsupportedLocaleError: If ``request.locale`` has no label table.
        """
        engine = self._engine
        if engine is None:
            raise ModelNotLoadedError(f"Model from {self.source} is not loaded; call load() first")
        validate_top_k(request.top_k)

        image = self._preprocessor.decode_image(request.image)
        tensor = self._preprocessor.prepare(image, self.resolution)
        scores = engine.predict(tensor)
        return self._decoder.decode(scores, request.top_k, request.locale)

    def classify(
        self,
        image: ImageSource,
        top_k: int = DEFAULT_TOP_K,
        locale: str = DEFAULT_LOCALE,
    ) -> list[Prediction]:
        """Positional shorthand for ``inference(InferenceRequest(image, top_k, locale))``."""
        return self.inference(InferenceRequest(image=image, top_k=top_k, locale=locale))


def create_model(
    checkpoint: int,
    local_root: str | Path | None = None,
    *,
    loader: ModelLoader,
    decoder: ResultDecoder,
    preprocessor: ImagePreprocessor | None = None,
    on_progress: Callable[[int], None] | None = None,
    models_url: str = DEFAULT_MODELS_URL,
    model_filename: str = MODEL_FILENAME,
) -> EfficientNetModel:
    """Resolve a checkpoint, build its model, and load it.

    Raises:
        InvalidCheckpointError: If ``checkpoint`` is outside [0, 7].
        ModelLoadError: If the graph cannot be loaded.
    """
    resolved = resolve(checkpoint, local_root, models_url=models_url, model_filename=model_filename)
    model = EfficientNetModel(
        resolved.source,
        resolved.resolution,
        loader=loader,
        decoder=decoder,
        preprocessor=preprocessor,
    )
    model.load(on_progress)
    return model
