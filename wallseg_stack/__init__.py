"""
Wall Segmentation Stack

Turns raw semantic segmentation output into a stable, denoised wall
occupancy mask for AR wall rendering.
"""

__version__ = "1.0.0"
__author__ = "Wall Segmentation Team"

from .core.types import TensorShape, RawOutput, ClassMap, Mask, ResolverMode
from .core.exceptions import UnsupportedOutputShape, DimensionMismatch, InvalidConfiguration
from .core.pipeline import WallMaskPipeline
from .config import PipelineConfig
from .perception import decode, resolve_target, rasterize, denoise, stabilize

__all__ = [
    "TensorShape",
    "RawOutput",
    "ClassMap",
    "Mask",
    "ResolverMode",
    "UnsupportedOutputShape",
    "DimensionMismatch",
    "InvalidConfiguration",
    "WallMaskPipeline",
    "PipelineConfig",
    "decode",
    "resolve_target",
    "rasterize",
    "denoise",
    "stabilize",
]
