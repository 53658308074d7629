"""EfficientNetX: EfficientNet checkpoint resolution, preprocessing, and top-K decoding."""

__version__ = "0.1.0"
