"""Exception hierarchy for EfficientNetX.

Every failure the library surfaces derives from ``EfficientNetError`` so the
HTTP layer can translate the whole family in one place.
"""

from __future__ import annotations


class EfficientNetError(Exception):
    """Base class for all EfficientNetX errors."""


class InvalidCheckpointError(EfficientNetError, ValueError):
    """The checkpoint identifier is not one of B0..B7."""


class ModelLoadError(EfficientNetError):
    """The model graph could not be retrieved or deserialized."""


class ModelNotLoadedError(EfficientNetError):
    """Inference was requested before a successful ``load()``."""


class ImageDecodeError(EfficientNetError):
    """The image source is missing, unreadable, or corrupt."""


class InvalidImageDimensionsError(EfficientNetError):
    """The image is too small to crop, too large to accept, or has the wrong shape."""


class InvalidTopKError(EfficientNetError, ValueError):
    """The requested number of predictions is not a positive integer."""


class UnsupportedLocaleError(EfficientNetError):
    """No label table exists for the requested locale."""


class ConfigurationError(EfficientNetError):
    """The settings cannot serve requests (format mismatch, missing label table)."""
