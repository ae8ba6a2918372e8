"""
Decoding of raw segmentation network output into per-pixel class maps.

Three output conventions are recognized:

1. Single-channel (c == 1): each value is already a class id.
2. Multi-channel (c > 1): per-class scores, decoded with argmax.
3. Flattened square (h == 1, w == c == known size): a w x w grid of
   class ids stored as one row, as exported by some DeepLab v3+ graphs.
"""

import numpy as np
from typing import Optional, Sequence, Union

from ..core.exceptions import UnsupportedOutputShape
from ..core.logging_config import get_logger
from ..core.types import ClassMap, RawOutput, TensorFormat, TensorShape

logger = get_logger("perception.decoder")

DEFAULT_FLATTENED_SQUARE_SIZES = (513,)

_MAX_CLASS_ID = np.iinfo(np.uint16).max


def classify_shape(
    shape: TensorShape,
    flattened_square_sizes: Sequence[int] = DEFAULT_FLATTENED_SQUARE_SIZES
) -> TensorFormat:
    """
    Determine which output convention a tensor shape follows.

    Args:
        shape: Shape of the raw output
        flattened_square_sizes: Side lengths accepted for the flattened layout

    Returns:
        The recognized TensorFormat

    Raises:
        UnsupportedOutputShape: If the shape matches no convention
    """
    if min(shape.batch, shape.height, shape.width, shape.channels) < 1:
        raise UnsupportedOutputShape(f"Degenerate output shape {shape}", shape=shape)

    if shape.batch != 1:
        raise UnsupportedOutputShape(
            f"Only batch size 1 is supported, got {shape}", shape=shape
        )

    if shape.channels == 1:
        return TensorFormat.SINGLE_CHANNEL

    if shape.height == 1 and shape.width == shape.channels:
        if shape.width in flattened_square_sizes:
            return TensorFormat.FLATTENED_SQUARE
        # One-row tensors with width == channels are flattened grids;
        # only known side lengths are accepted.
        raise UnsupportedOutputShape(
            f"Flattened output {shape} does not match a known square size "
            f"{tuple(flattened_square_sizes)}",
            shape=shape,
        )

    return TensorFormat.MULTI_CHANNEL


def _ids_from_values(values: np.ndarray) -> np.ndarray:
    """Round float class ids to uint16, mapping NaN to 0."""
    ids = np.rint(np.nan_to_num(values, nan=0.0, posinf=_MAX_CLASS_ID, neginf=0.0))
    return np.clip(ids, 0, _MAX_CLASS_ID).astype(np.uint16)


def _decode_ids(grid: np.ndarray, tensor_format: TensorFormat) -> ClassMap:
    return ClassMap(
        class_ids=_ids_from_values(grid),
        confidences=np.ones(grid.shape, dtype=np.float32),
        tensor_format=tensor_format,
    )


def _decode_scores(scores: np.ndarray, channel_axis: int) -> ClassMap:
    """
    Argmax over the channel axis.

    np.argmax returns the first maximal index, so ties resolve to the
    lowest channel. NaN scores never win.
    """
    if np.isnan(scores).any():
        scores = np.where(np.isnan(scores), -np.inf, scores)

    class_ids = np.argmax(scores, axis=channel_axis)
    confidences = np.take_along_axis(
        scores, np.expand_dims(class_ids, axis=channel_axis), axis=channel_axis
    ).squeeze(axis=channel_axis)

    return ClassMap(
        class_ids=class_ids.astype(np.uint16),
        confidences=confidences.astype(np.float32),
        tensor_format=TensorFormat.MULTI_CHANNEL,
    )


def decode(
    raw_buffer: Union[RawOutput, np.ndarray, Sequence[float]],
    shape: Optional[Union[TensorShape, Sequence[int], dict]] = None,
    channels_last: bool = True,
    flattened_square_sizes: Sequence[int] = DEFAULT_FLATTENED_SQUARE_SIZES
) -> ClassMap:
    """
    Interpret a raw output buffer as a per-pixel (class id, confidence) map.

    Args:
        raw_buffer: RawOutput, or a flat float buffer when `shape` is given
        shape: Tensor shape (ignored when `raw_buffer` is a RawOutput)
        channels_last: True for NHWC (channel-fastest), False for NCHW
        flattened_square_sizes: Side lengths accepted for the flattened layout

    Returns:
        ClassMap of height x width entries (width x width when flattened)

    Raises:
        UnsupportedOutputShape: If the shape is unrecognized or does not
            match the buffer length
    """
    if isinstance(raw_buffer, RawOutput):
        raw = raw_buffer
    else:
        if shape is None:
            raise ValueError("shape is required when decoding a bare buffer")
        raw = RawOutput.from_buffer(raw_buffer, shape)

    shape = raw.shape
    tensor_format = classify_shape(shape, flattened_square_sizes)

    if raw.data.size != shape.size:
        raise UnsupportedOutputShape(
            f"Buffer holds {raw.data.size} values but shape {shape} "
            f"requires {shape.size}",
            shape=shape,
        )

    h, w, c = shape.height, shape.width, shape.channels

    if tensor_format == TensorFormat.FLATTENED_SQUARE:
        class_map = _decode_ids(raw.data.reshape(w, w), tensor_format)
    elif tensor_format == TensorFormat.SINGLE_CHANNEL:
        class_map = _decode_ids(raw.data.reshape(h, w), tensor_format)
    elif channels_last:
        class_map = _decode_scores(raw.data.reshape(h, w, c), channel_axis=2)
    else:
        class_map = _decode_scores(raw.data.reshape(c, h, w), channel_axis=0)

    logger.debug(
        f"Decoded {shape} as {tensor_format.value} -> "
        f"{class_map.height}x{class_map.width}"
    )
    return class_map
