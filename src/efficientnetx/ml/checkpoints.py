"""Checkpoint resolution: map B0..B7 to a model source and input resolution.

Each checkpoint was trained at a fixed square input size, so the
checkpoint -> resolution coupling below must match the published weights.
Resolution is pure; nothing here touches the network or the disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from efficientnetx.errors import InvalidCheckpointError

DEFAULT_MODELS_URL = "https://raw.githubusercontent.com/ntedgi/efficientnet-tensorflowjs-binaries/main/models/B"
MODEL_FILENAME = "model.json"

INPUT_RESOLUTIONS: tuple[int, ...] = (224, 240, 260, 300, 380, 456, 528, 600)

ModelSource = str | Path


class EfficientNetCheckpoint(IntEnum):
    B0 = 0
    B1 = 1
    B2 = 2
    B3 = 3
    B4 = 4
    B5 = 5
    B6 = 6
    B7 = 7


@dataclass(frozen=True)
class ResolvedCheckpoint:
    """A checkpoint bound to its model source and required input resolution."""

    checkpoint: EfficientNetCheckpoint
    source: ModelSource
    resolution: int

    @property
    def is_local(self) -> bool:
        return isinstance(self.source, Path)


def validate_checkpoint(checkpoint: object) -> EfficientNetCheckpoint:
    """Coerce ``checkpoint`` to an ``EfficientNetCheckpoint``.

    Raises:
        InvalidCheckpointError: If ``checkpoint`` is not an integer in [0, 7].
    """
    if isinstance(checkpoint, bool) or not isinstance(checkpoint, int):
        raise InvalidCheckpointError(f"Checkpoint must be an integer in [0, 7], got {checkpoint!r}")
    try:
        return EfficientNetCheckpoint(checkpoint)
    except ValueError:
        raise InvalidCheckpointError(f"Unknown checkpoint: {checkpoint} (expected 0-7)") from None


def resolution_for(checkpoint: int) -> int:
    """Return the square input resolution the checkpoint was trained at."""
    return INPUT_RESOLUTIONS[validate_checkpoint(checkpoint)]


def resolve(
    checkpoint: int,
    local_root: str | Path | None = None,
    *,
    models_url: str = DEFAULT_MODELS_URL,
    model_filename: str = MODEL_FILENAME,
) -> ResolvedCheckpoint:
    """Resolve a checkpoint to its model source and input resolution.

    Args:
        checkpoint: Checkpoint ordinal, 0 (B0) through 7 (B7).
        local_root: Directory holding ``B<n>/<model_filename>`` trees. When
            given, the source is a local path; otherwise a remote URL.
        models_url: URL prefix the checkpoint ordinal is appended to.
        model_filename: Name of the serialized graph inside each checkpoint.

    Returns:
        The resolved checkpoint.

    Raises:
        InvalidCheckpointError: If ``checkpoint`` is outside [0, 7].
    """
    ckpt = validate_checkpoint(checkpoint)
    source: ModelSource
    if local_root:
        source = Path(local_root) / f"B{int(ckpt)}" / model_filename
    else:
        source = f"{models_url}{int(ckpt)}/{model_filename}"
    return ResolvedCheckpoint(checkpoint=ckpt, source=source, resolution=INPUT_RESOLUTIONS[ckpt])
