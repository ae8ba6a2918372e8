"""
Configuration loader for the wall segmentation stack.

Loads YAML configuration files and provides typed access to configuration values.
"""

from dataclasses import dataclass, field, fields
from typing import Optional, Dict, Any, Tuple
from pathlib import Path
import yaml

from ..core.exceptions import InvalidConfiguration
from ..core.logging_config import get_logger

logger = get_logger("config")

# Largest noise-filter radius; bounds the per-pixel voting cost
MAX_KERNEL_RADIUS = 5

# ADE20K-style class ids seen for walls across exported DeepLab models
DEFAULT_CANDIDATE_CLASS_IDS = (5, 3, 1, 9, 8, 12, 2, 4)


@dataclass
class PipelineConfig:
    """Wall mask pipeline settings."""
    # Class identity
    target_class_id: int = 9
    candidate_class_ids: Tuple[int, ...] = DEFAULT_CANDIDATE_CLASS_IDS
    enable_adaptive_detection: bool = True
    lock_coverage_fraction: float = 0.05
    rotation_interval: int = 60            # frames per candidate
    lock_confirmation_frames: int = 1

    # Rasterization
    confidence_threshold: float = 0.5
    use_argmax_mode: bool = True
    soft_output: bool = False

    # Decoding
    channels_last: bool = True             # NHWC; False for NCHW
    flattened_square_sizes: Tuple[int, ...] = (513,)

    # Noise filtering
    enable_noise_reduction: bool = True
    kernel_size: int = 5
    enable_hole_filling: bool = False
    hole_filling_kernel_size: int = 5
    hole_filling_iterations: int = 1

    # Temporal smoothing
    enable_temporal_smoothing: bool = True
    smoothing_factor: float = 0.3         # weight of the accumulated history

    # Throttling
    min_invocation_interval: float = 0.1   # seconds

    # Statistics
    collect_statistics: bool = False
    statistics_interval: int = 30
    min_detection_pixels: int = 100

    def __post_init__(self):
        self.candidate_class_ids = tuple(int(c) for c in self.candidate_class_ids)
        self.flattened_square_sizes = tuple(int(s) for s in self.flattened_square_sizes)

        clamped = min(1.0, max(0.0, float(self.confidence_threshold)))
        if clamped != self.confidence_threshold:
            logger.warning(
                f"confidence_threshold {self.confidence_threshold} clamped to {clamped}"
            )
        self.confidence_threshold = clamped

        self._validate()

    def _validate(self) -> None:
        if self.enable_adaptive_detection and not self.candidate_class_ids:
            raise InvalidConfiguration(
                "Adaptive detection requires at least one candidate class id",
                field="candidate_class_ids",
            )
        if any(c < 0 for c in self.candidate_class_ids):
            raise InvalidConfiguration(
                "Candidate class ids must be non-negative",
                field="candidate_class_ids",
            )
        if self.target_class_id < 0:
            raise InvalidConfiguration(
                f"target_class_id must be non-negative, got {self.target_class_id}",
                field="target_class_id",
            )
        if not 0.0 < self.lock_coverage_fraction <= 1.0:
            raise InvalidConfiguration(
                f"lock_coverage_fraction must be in (0, 1], got {self.lock_coverage_fraction}",
                field="lock_coverage_fraction",
            )
        if not 0.0 <= self.smoothing_factor <= 1.0:
            raise InvalidConfiguration(
                f"smoothing_factor must be in [0, 1], got {self.smoothing_factor}",
                field="smoothing_factor",
            )
        if self.min_invocation_interval < 0:
            raise InvalidConfiguration(
                f"min_invocation_interval must be >= 0, got {self.min_invocation_interval}",
                field="min_invocation_interval",
            )
        if self.kernel_size < 0:
            raise InvalidConfiguration(
                f"kernel_size must be >= 0, got {self.kernel_size}",
                field="kernel_size",
            )
        if any(s < 1 for s in self.flattened_square_sizes):
            raise InvalidConfiguration(
                "Flattened square sizes must be positive",
                field="flattened_square_sizes",
            )

        for name in (
            "rotation_interval",
            "lock_confirmation_frames",
            "hole_filling_kernel_size",
            "hole_filling_iterations",
            "statistics_interval",
        ):
            if getattr(self, name) < 1:
                raise InvalidConfiguration(
                    f"{name} must be >= 1, got {getattr(self, name)}",
                    field=name,
                )
        if self.min_detection_pixels < 0:
            raise InvalidConfiguration(
                f"min_detection_pixels must be >= 0, got {self.min_detection_pixels}",
                field="min_detection_pixels",
            )

    @property
    def kernel_radius(self) -> int:
        """Noise-filter radius derived from kernel_size, clamped for bounded cost."""
        return min(self.kernel_size // 2, MAX_KERNEL_RADIUS)


@dataclass
class StackConfig:
    """Complete stack configuration."""
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    log_level: str = "INFO"
    log_file: Optional[str] = None


class ConfigLoader:
    """Loads and parses YAML configuration files."""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize config loader.

        Args:
            config_dir: Directory containing config files. Defaults to
                        the 'config' directory in the package.
        """
        if config_dir is None:
            config_dir = Path(__file__).parent
        self.config_dir = Path(config_dir)

    def load_stack_config(self, filename: str = "pipeline_config.yaml") -> StackConfig:
        """Load stack configuration."""
        config_path = self.config_dir / filename
        data = self._load_yaml(config_path)

        pipeline = self.parse_pipeline_config(data.get("segmentation", {}))

        log_data = data.get("logging", {}) or {}

        return StackConfig(
            pipeline=pipeline,
            log_level=log_data.get("level", "INFO"),
            log_file=log_data.get("file"),
        )

    @staticmethod
    def parse_pipeline_config(seg_data: Dict[str, Any]) -> PipelineConfig:
        """
        Build a PipelineConfig from the `segmentation` mapping.

        Unknown keys are ignored with a warning; missing keys keep
        their defaults. Invalid values raise InvalidConfiguration.
        """
        seg_data = seg_data or {}
        known = {f.name for f in fields(PipelineConfig)}

        unknown = sorted(set(seg_data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown segmentation keys: {', '.join(unknown)}")

        return PipelineConfig(**{k: v for k, v in seg_data.items() if k in known})

    def _load_yaml(self, path: Path) -> Dict[str, Any]:
        """Load a YAML file and return its contents as a dictionary."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return {}

        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)
                return data if data else {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load config from {path}: {e}")
            return {}
