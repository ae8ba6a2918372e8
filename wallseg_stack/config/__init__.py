"""Configuration module for the wall segmentation stack."""

from .config_loader import (
    ConfigLoader,
    PipelineConfig,
    StackConfig,
    MAX_KERNEL_RADIUS,
    DEFAULT_CANDIDATE_CLASS_IDS,
)

__all__ = [
    "ConfigLoader",
    "PipelineConfig",
    "StackConfig",
    "MAX_KERNEL_RADIUS",
    "DEFAULT_CANDIDATE_CLASS_IDS",
]
