"""
Stateful wall mask pipeline.

Composes the per-frame stages:

    raw tensor -> decode -> resolve class id -> rasterize
               -> denoise / fill holes -> temporal stabilize -> mask

The pipeline owns the only state that survives between frames: the
resolver state, the previous stabilized mask and the throttle timestamp.
"""

import threading
import time
from typing import Callable, Optional, Sequence, Union

import numpy as np

from .exceptions import UnsupportedOutputShape
from .logging_config import get_logger, RateLimitedLogger
from .types import ClassMap, Mask, RawOutput, ResolverState, SegmentationStats, TensorShape
from ..config import PipelineConfig
from ..perception.class_resolver import ClassIdentityResolver, build_histogram
from ..perception.frame_throttle import FrameThrottle
from ..perception.mask_rasterizer import rasterize
from ..perception.noise_filter import clean_mask_from_config
from ..perception.temporal_stabilizer import TemporalStabilizer
from ..perception import tensor_decoder

logger = get_logger("pipeline")

MaskCallback = Callable[[Mask, SegmentationStats], None]


class WallMaskPipeline:
    """
    Turns raw segmentation output into a stable wall mask.

    One instance serves one frame source. Calls to `run` are serialized
    by an instance lock; independent instances share nothing.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        on_mask: Optional[MaskCallback] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the pipeline.

        Args:
            config: Pipeline configuration (defaults if None)
            on_mask: Called with (mask, stats) after every full execution
            clock: Time source used when `run` is called without `now`
        """
        self.config = config if config is not None else PipelineConfig()
        self._on_mask = on_mask
        self._clock = clock
        self._lock = threading.Lock()
        self._rate_limited = RateLimitedLogger(logger, min_interval=5.0)

        self._resolver = ClassIdentityResolver(self.config)
        self._stabilizer = TemporalStabilizer.from_config(self.config)
        self._throttle = FrameThrottle(self.config.min_invocation_interval, clock)

        self._generation = 0
        self._rejected_frames = 0
        self._last_mask: Optional[Mask] = None
        self._last_stats: Optional[SegmentationStats] = None
        self._disposed = False

        logger.info(
            f"Pipeline created ({self._resolver.state.mode.value} mode, "
            f"target {self._resolver.target_class_id})"
        )

    @classmethod
    def create(
        cls,
        config: Optional[PipelineConfig] = None,
        on_mask: Optional[MaskCallback] = None
    ) -> "WallMaskPipeline":
        """Construct a pipeline; configuration errors raise here."""
        return cls(config=config, on_mask=on_mask)

    def run(
        self,
        raw_buffer: Union[RawOutput, np.ndarray, Sequence[float]],
        shape: Optional[Union[TensorShape, Sequence[int], dict]] = None,
        now: Optional[float] = None
    ) -> Mask:
        """
        Process one network output.

        If the previous execution was less than `min_invocation_interval`
        ago, the previous mask object is returned without decoding. If the
        tensor shape is unsupported, the previous mask is returned as well.

        Args:
            raw_buffer: RawOutput, or flat float buffer with `shape`
            shape: Tensor shape when passing a bare buffer
            now: Invocation time in seconds (defaults to the pipeline clock)

        Returns:
            Stabilized wall mask

        Raises:
            UnsupportedOutputShape: If the shape is unsupported and no
                previous mask exists
            RuntimeError: If the pipeline was disposed
        """
        with self._lock:
            if self._disposed:
                raise RuntimeError("Pipeline has been disposed")

            if now is None:
                now = self._clock()

            if self._last_mask is not None and not self._throttle.should_run(now):
                return self._last_mask

            return self._execute(raw_buffer, shape, now)

    def _execute(self, raw_buffer, shape, now: float) -> Mask:
        try:
            class_map = tensor_decoder.decode(
                raw_buffer,
                shape,
                channels_last=self.config.channels_last,
                flattened_square_sizes=self.config.flattened_square_sizes,
            )
        except UnsupportedOutputShape as e:
            self._rejected_frames += 1
            if self._last_mask is None:
                raise
            self._rate_limited.warning("Unsupported output shape %s, keeping previous mask", e.shape)
            return self._last_mask

        target_id = self._resolver.resolve(class_map)

        self._generation += 1
        mask = rasterize(class_map, target_id, self.config)
        mask = clean_mask_from_config(mask, self.config)
        mask.generation = self._generation

        stable = self._stabilizer.update(mask)
        self._throttle.record_run(now)

        stats = self._build_stats(class_map, stable, target_id)
        self._last_mask = stable
        self._last_stats = stats

        if self._on_mask is not None:
            self._on_mask(stable, stats)

        return stable

    def _build_stats(self, class_map: ClassMap, mask: Mask, target_id: int) -> SegmentationStats:
        target_pixels = mask.pixel_count
        stats = SegmentationStats(
            generation=self._generation,
            target_class_id=target_id,
            resolver_mode=self._resolver.state.mode,
            target_pixel_count=target_pixels,
            total_pixel_count=mask.data.size,
            target_detected=target_pixels > self.config.min_detection_pixels,
        )

        if (
            self.config.collect_statistics
            and (self._generation - 1) % self.config.statistics_interval == 0
        ):
            stats.class_distribution = build_histogram(class_map)
            top = sorted(stats.class_distribution.items(), key=lambda kv: -kv[1])[:5]
            logger.info(
                "Class distribution: "
                + ", ".join(f"{cid}={count / class_map.size * 100:.1f}%" for cid, count in top)
            )

        logger.debug(
            f"Frame {self._generation}: class {target_id}, "
            f"{stats.target_coverage * 100:.1f}% wall"
        )
        return stats

    def reset(self) -> None:
        """Clear resolver lock-in, temporal history and throttle state."""
        with self._lock:
            self._resolver.reset()
            self._stabilizer.reset()
            self._throttle.reset()
            self._last_mask = None
            self._last_stats = None
        logger.info("Pipeline reset")

    def dispose(self) -> None:
        """Release state; further `run` calls raise RuntimeError."""
        with self._lock:
            self._stabilizer.reset()
            self._last_mask = None
            self._last_stats = None
            self._disposed = True
        logger.info("Pipeline disposed")

    def __enter__(self) -> "WallMaskPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    @property
    def last_mask(self) -> Optional[Mask]:
        """Most recent stabilized mask."""
        return self._last_mask

    @property
    def last_stats(self) -> Optional[SegmentationStats]:
        return self._last_stats

    @property
    def resolver_state(self) -> ResolverState:
        return self._resolver.state

    @property
    def target_class_id(self) -> int:
        return self._resolver.target_class_id

    @property
    def is_locked(self) -> bool:
        return self._resolver.is_locked

    @property
    def generation(self) -> int:
        """Number of full executions so far."""
        return self._generation

    @property
    def rejected_frames(self) -> int:
        """Frames whose tensor shape the decoder rejected."""
        return self._rejected_frames

    @property
    def is_disposed(self) -> bool:
        return self._disposed
