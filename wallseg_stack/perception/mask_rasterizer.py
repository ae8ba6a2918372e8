"""
Conversion of a decoded class map into a wall occupancy mask.
"""

import numpy as np
from typing import TYPE_CHECKING

from ..core.types import ClassMap, Mask

if TYPE_CHECKING:
    from ..config import PipelineConfig


def rasterize_mask(
    class_map: ClassMap,
    target_id: int,
    confidence_threshold: float = 0.5,
    use_argmax_mode: bool = True,
    soft: bool = False
) -> Mask:
    """
    Mark the pixels that belong to `target_id`.

    In argmax mode a pixel is set iff its class equals the target; the
    decoder already picked the best class, so confidence is ignored. In
    probability mode the pixel's confidence must also reach the threshold.

    Args:
        class_map: Decoded class map
        target_id: Class id to extract
        confidence_threshold: Minimum confidence (probability mode only)
        use_argmax_mode: Select argmax or probability mode
        soft: Return a float32 alpha mask (0.0 / 1.0) instead of bool

    Returns:
        Mask with the same height and width as the class map
    """
    selected = class_map.class_ids == target_id
    if not use_argmax_mode:
        selected &= class_map.confidences >= confidence_threshold

    if soft:
        return Mask(data=selected.astype(np.float32))
    return Mask(data=selected)


def rasterize(class_map: ClassMap, target_id: int, config: "PipelineConfig") -> Mask:
    """Rasterize using the thresholds and mode flags from config."""
    return rasterize_mask(
        class_map,
        target_id,
        confidence_threshold=config.confidence_threshold,
        use_argmax_mode=config.use_argmax_mode,
        soft=config.soft_output,
    )


def mask_for_class(class_map: ClassMap, class_id: int) -> Mask:
    """Binary mask of an arbitrary class, e.g. for inspecting other classes."""
    return rasterize_mask(class_map, class_id, use_argmax_mode=True)
