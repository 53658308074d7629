"""Shared fixtures: a stub engine/loader pair and small label tables."""

from __future__ import annotations

import io
import threading
from typing import TYPE_CHECKING

import numpy as np
import pytest
from PIL import Image

from efficientnetx.ml.decoding import ResultDecoder
from efficientnetx.ml.labels import LabelVocabulary

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

    from efficientnetx.ml.checkpoints import ModelSource

EN_LABELS = ["tench", "goldfish", "great white shark", "tiger shark", "hammerhead"]
ES_LABELS = ["tenca", "pez dorado", "gran tiburón blanco", "tiburón tigre", "pez martillo"]

# goldfish and tiger shark tie for first place
DEFAULT_SCORES = np.array([0.05, 0.4, 0.1, 0.4, 0.05], dtype=np.float32)


class StubEngine:
    """Returns fixed scores and remembers every tensor it was given."""

    def __init__(self, scores: NDArray[np.float32] = DEFAULT_SCORES) -> None:
        self.scores = scores
        self.tensors: list[NDArray[np.float32]] = []

    def predict(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        self.tensors.append(tensor)
        return self.scores


class StubLoader:
    """Hands out a ``StubEngine`` after reporting a few progress steps."""

    supported_suffixes: tuple[str, ...] = (".onnx",)

    def __init__(
        self,
        engine: StubEngine | None = None,
        error: Exception | None = None,
        steps: tuple[float, ...] = (0.25, 0.5, 1.0),
        gate: threading.Event | None = None,
    ) -> None:
        self.engine = engine or StubEngine()
        self.error = error
        self.steps = steps
        self.gate = gate
        self.sources: list[ModelSource] = []

    def load(self, source: ModelSource, on_progress: Callable[[float], None]) -> StubEngine:
        self.sources.append(source)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        for step in self.steps:
            on_progress(step)
        return self.engine


def image_bytes(size: tuple[int, int] = (500, 500), color: tuple[int, ...] = (200, 100, 30), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture()
def vocabulary() -> LabelVocabulary:
    return LabelVocabulary({"en": EN_LABELS, "es": ES_LABELS})


@pytest.fixture()
def decoder(vocabulary: LabelVocabulary) -> ResultDecoder:
    return ResultDecoder(vocabulary)


@pytest.fixture()
def stub_loader() -> StubLoader:
    return StubLoader()
