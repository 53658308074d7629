"""Inference engine boundary and the ONNX Runtime implementation.

The graph itself is opaque: the rest of the package only needs
``predict(tensor) -> scores``. ``OnnxModelLoader`` fetches a serialized graph
from a local path or a URL, reporting progress as it goes, and wraps the
resulting ``InferenceSession``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import httpx
import numpy as np
from onnxruntime import InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import ExecutionMode

from efficientnetx.errors import ModelLoadError

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import NDArray

    from efficientnetx.config import Settings
    from efficientnetx.ml.checkpoints import ModelSource

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1 << 20


# ---------------------------------------------------------------------------
# Protocols (the seams tests stub out)
# ---------------------------------------------------------------------------


class InferenceEngine(Protocol):
    """A loaded model graph."""

    def predict(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        """Run the graph on a ``(1, R, R, 3)`` tensor and return raw class scores."""
        ...


class ModelLoader(Protocol):
    """Retrieves and deserializes a model graph."""

    #: File suffixes of the graph formats this loader can deserialize.
    supported_suffixes: tuple[str, ...]

    def load(self, source: ModelSource, on_progress: Callable[[float], None]) -> InferenceEngine:
        """Load the graph at ``source``.

        Args:
            source: Local path or remote URL of the serialized graph.
            on_progress: Called with the retrieved fraction, 0.0 to 1.0.

        Raises:
            ModelLoadError: If retrieval or deserialization fails.
        """
        ...


# ---------------------------------------------------------------------------
# ONNX Runtime implementation
# ---------------------------------------------------------------------------


class OnnxInferenceEngine:
    """Feeds the tensor to the session's first input and returns its first output."""

    def __init__(self, session: InferenceSession) -> None:
        self._session = session
        self._input_name: str = session.get_inputs()[0].name

    def predict(self, tensor: NDArray[np.float32]) -> NDArray[np.float32]:
        outputs = self._session.run(None, {self._input_name: tensor})
        return np.asarray(outputs[0], dtype=np.float32).ravel()


class OnnxModelLoader:
    """Loads ONNX graphs from disk or over HTTP into ``OnnxInferenceEngine``s."""

    supported_suffixes: tuple[str, ...] = (".onnx", ".ort")

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        self._settings = settings
        self._client = client
        self._providers = self._build_providers()
        self._session_options = self._build_session_options()

    def load(self, source: ModelSource, on_progress: Callable[[float], None]) -> InferenceEngine:
        if isinstance(source, Path):
            payload = self._read_local(source, on_progress)
        else:
            payload = self._download(source, on_progress)

        try:
            session = InferenceSession(
                payload,
                sess_options=self._session_options,
                providers=self._providers,
            )
        except Exception as exc:
            raise ModelLoadError(f"Cannot deserialize model graph from {source}: {exc}") from exc
        logger.info("Created inference session for %s (%d bytes)", source, len(payload))
        return OnnxInferenceEngine(session)

    # -- Retrieval ------------------------------------------------------------

    @staticmethod
    def _read_local(path: Path, on_progress: Callable[[float], None]) -> bytes:
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise ModelLoadError(f"Cannot read model file {path}: {exc}") from exc
        on_progress(1.0)
        return payload

    def _download(self, url: str, on_progress: Callable[[float], None]) -> bytes:
        client = self._client or httpx.Client(timeout=self._settings.download_timeout, follow_redirects=True)
        try:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length", 0))
                chunks: list[bytes] = []
                received = 0
                for chunk in response.iter_bytes(_CHUNK_SIZE):
                    chunks.append(chunk)
                    received += len(chunk)
                    if total:
                        on_progress(min(received / total, 1.0))
        except httpx.HTTPError as exc:
            raise ModelLoadError(f"Cannot download model from {url}: {exc}") from exc
        finally:
            if self._client is None:
                client.close()

        on_progress(1.0)
        logger.info("Downloaded %s (%d bytes)", url, received)
        return b"".join(chunks)

    # -- Session configuration --------------------------------------------------

    def _build_providers(self) -> list[str | tuple[str, dict[str, object]]]:
        device = self._settings.device
        if device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": self._settings.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    def _build_session_options(self) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = self._settings.intra_op_threads
        opts.inter_op_num_threads = self._settings.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL

        if self._settings.device == "openvino":
            # OpenVINO does its own graph optimization
            from onnxruntime import GraphOptimizationLevel

            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
