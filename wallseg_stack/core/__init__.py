"""Core types, errors and the stateful pipeline."""

from .types import (
    TensorShape,
    RawOutput,
    TensorFormat,
    ClassMap,
    ClassHistogram,
    Mask,
    ResolverMode,
    ResolverState,
    ThrottleState,
    SegmentationStats,
)
from .exceptions import WallSegError, UnsupportedOutputShape, DimensionMismatch, InvalidConfiguration
from .logging_config import configure_logging, get_logger, LogLevel, RateLimitedLogger
from .pipeline import WallMaskPipeline

__all__ = [
    "TensorShape",
    "RawOutput",
    "TensorFormat",
    "ClassMap",
    "ClassHistogram",
    "Mask",
    "ResolverMode",
    "ResolverState",
    "ThrottleState",
    "SegmentationStats",
    "WallSegError",
    "UnsupportedOutputShape",
    "DimensionMismatch",
    "InvalidConfiguration",
    "configure_logging",
    "get_logger",
    "LogLevel",
    "RateLimitedLogger",
    "WallMaskPipeline",
]
