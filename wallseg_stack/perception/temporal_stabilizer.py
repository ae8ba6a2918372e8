"""
Temporal smoothing for wall masks.

Blends each new mask into a running average of earlier frames to
reduce frame-to-frame flicker of the wall overlay.
"""

from typing import Optional, TYPE_CHECKING
import numpy as np

from ..core.exceptions import DimensionMismatch
from ..core.logging_config import get_logger, RateLimitedLogger
from ..core.types import Mask

if TYPE_CHECKING:
    from ..config import PipelineConfig

logger = get_logger("perception.stabilizer")


def stabilize(mask: Mask, previous: Optional[Mask], alpha: float) -> Mask:
    """
    Blend the current mask with the previous one (single step).

    Higher `alpha` weights the previous frame more: 0 returns the current
    mask, 1 returns the previous mask. Binary masks are accumulated and
    re-thresholded at 0.5; soft masks are blended linearly. The result
    has the dtype of `mask`.

    Args:
        mask: Current mask
        previous: Previous stabilized mask, or None on the first frame
        alpha: Weight of the previous frame in [0, 1]

    Returns:
        New stabilized mask

    Raises:
        DimensionMismatch: If `previous` has a different size
        ValueError: If alpha is outside [0, 1]
    """
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must be in [0, 1], got {alpha}")

    if previous is None or alpha == 0.0:
        return Mask(data=mask.data.copy(), generation=mask.generation)

    if previous.shape != mask.shape:
        raise DimensionMismatch(
            f"Previous mask {previous.shape} does not match current {mask.shape}",
            expected=mask.shape,
            actual=previous.shape,
        )

    if alpha == 1.0:
        data = previous.as_float().copy() if mask.is_soft else previous.as_bool().copy()
        return Mask(data=data, generation=mask.generation)

    blended = alpha * previous.as_float() + (1.0 - alpha) * mask.as_float()

    if mask.is_soft:
        return Mask(data=blended.astype(np.float32), generation=mask.generation)
    return Mask(data=blended >= 0.5, generation=mask.generation)


class TemporalStabilizer:
    """
    Exponential moving average of masks across frames.

    The running average is kept as a float32 accumulator:

        acc = alpha * acc + (1 - alpha) * current

    Binary masks are re-thresholded from the accumulator at 0.5, so a
    persistent change shows up after a bounded number of frames while a
    single-frame glitch is damped. Soft masks return the accumulator.
    A size change drops the history and passes the new mask through.
    """

    def __init__(self, alpha: float = 0.3, enabled: bool = True):
        """
        Args:
            alpha: Weight of the accumulated history (0-1)
            enabled: If False, masks pass through and reseed the history
        """
        if not 0.0 <= alpha <= 1.0:
            raise ValueError(f"alpha must be in [0, 1], got {alpha}")
        self.alpha = alpha
        self.enabled = enabled
        self._accumulator: Optional[np.ndarray] = None
        self._previous: Optional[Mask] = None
        self._rate_limited = RateLimitedLogger(logger, min_interval=5.0)

    def update(self, mask: Mask) -> Mask:
        """Fold `mask` into the running average and return the stabilized mask."""
        current = mask.as_float()

        if self._accumulator is not None and self._accumulator.shape != current.shape:
            self._rate_limited.warning(
                "Mask size changed from %s to %s, resetting temporal state",
                self._accumulator.shape, current.shape,
            )
            self._accumulator = None

        if self._accumulator is None or not self.enabled:
            self._accumulator = current.astype(np.float32, copy=True)
            result = Mask(data=mask.data.copy(), generation=mask.generation)
        else:
            self._accumulator = (
                self.alpha * self._accumulator + (1.0 - self.alpha) * current
            ).astype(np.float32)
            if mask.is_soft:
                data = self._accumulator.copy()
            else:
                data = self._accumulator >= 0.5
            result = Mask(data=data, generation=mask.generation)

        self._previous = result
        return result

    def reset(self) -> None:
        """Forget the accumulated history."""
        self._accumulator = None
        self._previous = None

    @property
    def previous(self) -> Optional[Mask]:
        """Most recent stabilized mask."""
        return self._previous

    @property
    def accumulator(self) -> Optional[np.ndarray]:
        return self._accumulator

    @classmethod
    def from_config(cls, config: "PipelineConfig") -> "TemporalStabilizer":
        """
        Create stabilizer from config.

        Args:
            config: Pipeline configuration

        Returns:
            Configured temporal stabilizer
        """
        return cls(
            alpha=config.smoothing_factor,
            enabled=config.enable_temporal_smoothing
        )
