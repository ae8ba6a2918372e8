"""Perception stages: tensor decoding through temporal stabilization."""

from .tensor_decoder import decode, classify_shape
from .class_resolver import (
    ClassIdentityResolver,
    build_histogram,
    create_resolver_state,
    resolve_target,
)
from .mask_rasterizer import rasterize, rasterize_mask, mask_for_class
from .noise_filter import denoise, fill_holes, clean_mask_from_config
from .temporal_stabilizer import TemporalStabilizer, stabilize
from .frame_throttle import FrameThrottle
from .tensor_source import TensorSource, MockTensorSource, NpyTensorSource

__all__ = [
    "decode",
    "classify_shape",
    "ClassIdentityResolver",
    "build_histogram",
    "create_resolver_state",
    "resolve_target",
    "rasterize",
    "rasterize_mask",
    "mask_for_class",
    "denoise",
    "fill_holes",
    "clean_mask_from_config",
    "TemporalStabilizer",
    "stabilize",
    "FrameThrottle",
    "TensorSource",
    "MockTensorSource",
    "NpyTensorSource",
]
