"""
Mask filtering utilities for wall segmentation.

Provides a majority-vote filter to remove speckle from the raw wall mask
and an optional morphological closing to fill small holes in walls.
"""

import cv2
import numpy as np
from typing import TYPE_CHECKING

from ..core.types import Mask

if TYPE_CHECKING:
    from ..config import PipelineConfig


def denoise(mask: Mask, kernel_radius: int) -> Mask:
    """
    Majority-vote filter over a (2r+1)^2 neighborhood.

    Votes are counted on the input mask, never on partially filtered
    output, so the result does not depend on processing order. Pixels
    closer than `kernel_radius` to an edge are copied unchanged.

    Args:
        mask: Input mask (not modified)
        kernel_radius: Neighborhood radius r; r < 1 returns a copy

    Returns:
        New filtered mask with the same dtype and generation
    """
    data = mask.data
    out = data.copy()
    r = kernel_radius
    h, w = data.shape
    k = 2 * r + 1

    if r < 1 or h < k or w < k:
        return Mask(data=out, generation=mask.generation)

    votes = cv2.boxFilter(
        mask.as_bool().astype(np.float32),
        -1,
        (k, k),
        normalize=False,
        borderType=cv2.BORDER_REPLICATE,
    )

    # k * k is odd, so a strict majority never ties
    majority = votes[r:h - r, r:w - r] * 2 > k * k
    out[r:h - r, r:w - r] = majority.astype(out.dtype)

    return Mask(data=out, generation=mask.generation)


def fill_holes(mask: Mask, kernel_size: int = 5, iterations: int = 1) -> Mask:
    """
    Morphological closing to fill small holes inside wall regions.

    Args:
        mask: Input mask (not modified)
        kernel_size: Size of the elliptical structuring element
        iterations: Number of closing iterations

    Returns:
        New mask with the same dtype and generation
    """
    mask_uint8 = mask.as_bool().astype(np.uint8) * 255

    kernel = cv2.getStructuringElement(
        cv2.MORPH_ELLIPSE,
        (kernel_size, kernel_size)
    )

    closed = cv2.morphologyEx(
        mask_uint8,
        cv2.MORPH_CLOSE,
        kernel,
        iterations=iterations
    )

    return Mask(data=(closed > 0).astype(mask.data.dtype), generation=mask.generation)


def clean_mask_from_config(mask: Mask, config: "PipelineConfig") -> Mask:
    """
    Apply the filters enabled in config.

    Args:
        mask: Rasterized wall mask
        config: Pipeline configuration

    Returns:
        Cleaned mask (a new object even if no filter is enabled)
    """
    if config.enable_noise_reduction:
        mask = denoise(mask, config.kernel_radius)
    else:
        mask = Mask(data=mask.data.copy(), generation=mask.generation)

    if config.enable_hole_filling:
        mask = fill_holes(
            mask,
            kernel_size=config.hole_filling_kernel_size,
            iterations=config.hole_filling_iterations
        )

    return mask
