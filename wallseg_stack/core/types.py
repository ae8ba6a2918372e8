"""
Core data types used across the wall segmentation stack.

These dataclasses provide a consistent, typed interface for passing data
between the stages of the mask pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple, Union
import numpy as np
import time


# Mapping of class id -> pixel count for one frame
ClassHistogram = dict


@dataclass(frozen=True)
class TensorShape:
    """
    Shape descriptor of a raw network output.

    Attributes:
        height: Spatial rows (or 1 for the flattened square layout)
        width: Spatial columns
        channels: Values per pixel (1 for already-decided class ids)
        batch: Batch dimension, always 1 for a single camera frame
    """
    height: int
    width: int
    channels: int
    batch: int = 1

    @property
    def size(self) -> int:
        """Number of floats a buffer of this shape holds."""
        return self.batch * self.height * self.width * self.channels

    @classmethod
    def from_any(
        cls,
        value: Union["TensorShape", Sequence[int], dict]
    ) -> "TensorShape":
        """
        Build a shape from a TensorShape, a dict or a tuple.

        Tuples are read as (height, width, channels) or
        (batch, height, width, channels).
        """
        if isinstance(value, TensorShape):
            return value
        if isinstance(value, dict):
            return cls(
                height=int(value["height"]),
                width=int(value["width"]),
                channels=int(value["channels"]),
                batch=int(value.get("batch", 1)),
            )
        dims = tuple(int(d) for d in value)
        if len(dims) == 3:
            return cls(height=dims[0], width=dims[1], channels=dims[2])
        if len(dims) == 4:
            return cls(batch=dims[0], height=dims[1], width=dims[2], channels=dims[3])
        raise ValueError(f"Cannot interpret {value!r} as a tensor shape")

    def __str__(self) -> str:
        return f"(n:{self.batch}, h:{self.height}, w:{self.width}, c:{self.channels})"


@dataclass(frozen=True, eq=False)
class RawOutput:
    """
    Immutable raw network output: shape plus a flat float32 buffer.
    """
    shape: TensorShape
    data: np.ndarray

    @classmethod
    def from_buffer(
        cls,
        buffer,
        shape: Union[TensorShape, Sequence[int], dict]
    ) -> "RawOutput":
        """Copy `buffer` into a read-only flat float32 array."""
        data = np.array(buffer, dtype=np.float32, copy=True).ravel()
        data.setflags(write=False)
        return cls(shape=TensorShape.from_any(shape), data=data)


class TensorFormat(Enum):
    """Output conventions the decoder recognizes."""
    SINGLE_CHANNEL = "single_channel"
    MULTI_CHANNEL = "multi_channel"
    FLATTENED_SQUARE = "flattened_square"


@dataclass(eq=False)
class ClassMap:
    """
    Per-pixel class decision produced by the decoder.

    Attributes:
        class_ids: (H x W) uint16 class ids
        confidences: (H x W) float32 confidence of the chosen class
        tensor_format: Convention the source tensor was decoded from
    """
    class_ids: np.ndarray
    confidences: np.ndarray
    tensor_format: TensorFormat

    @property
    def height(self) -> int:
        return self.class_ids.shape[0]

    @property
    def width(self) -> int:
        return self.class_ids.shape[1]

    @property
    def size(self) -> int:
        return self.class_ids.size

    @property
    def has_confidences(self) -> bool:
        """True if confidences carry information (multi-channel output)."""
        return self.tensor_format == TensorFormat.MULTI_CHANNEL


@dataclass(eq=False)
class Mask:
    """
    Occupancy mask for the target class.

    Attributes:
        data: (H x W) bool array, or float32 alpha in [0, 1] for soft masks
        generation: Counter of the pipeline execution that produced it
    """
    data: np.ndarray
    generation: int = 0

    @classmethod
    def empty(cls, height: int, width: int, soft: bool = False) -> "Mask":
        """All-false (or all-zero alpha) mask."""
        dtype = np.float32 if soft else bool
        return cls(data=np.zeros((height, width), dtype=dtype))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def is_soft(self) -> bool:
        return self.data.dtype != bool

    @property
    def pixel_count(self) -> int:
        """Number of set pixels (alpha >= 0.5 for soft masks)."""
        if self.is_soft:
            return int(np.count_nonzero(self.data >= 0.5))
        return int(np.count_nonzero(self.data))

    def as_bool(self) -> np.ndarray:
        """Binary view of the mask."""
        if self.is_soft:
            return self.data >= 0.5
        return self.data

    def as_float(self) -> np.ndarray:
        """Alpha view of the mask."""
        return self.data.astype(np.float32, copy=False)

    def to_image(self) -> np.ndarray:
        """Convert to a uint8 image (0-255) for writing or display."""
        return np.clip(self.as_float() * 255.0, 0, 255).astype(np.uint8)


class ResolverMode(Enum):
    """Class identity resolution modes."""
    FIXED = "fixed"
    SEARCHING = "searching"
    LOCKED = "locked"


@dataclass
class ResolverState:
    """
    Mutable identity-search state owned by one pipeline.

    Attributes:
        mode: Current resolution mode
        current_target_id: Id used for masks (provisional while searching)
        candidate_ids: Ordered candidate list (not modified after creation)
        candidate_index: Index of the candidate currently being tried
        frame_count: Frames processed while searching
        consecutive_coverage_count: Consecutive frames `pending_id` exceeded
            the lock coverage fraction
        pending_id: Candidate currently accumulating coverage frames
    """
    mode: ResolverMode
    current_target_id: int
    candidate_ids: Tuple[int, ...] = ()
    candidate_index: int = 0
    frame_count: int = 0
    consecutive_coverage_count: int = 0
    pending_id: Optional[int] = None

    @property
    def is_locked(self) -> bool:
        return self.mode == ResolverMode.LOCKED


@dataclass
class ThrottleState:
    """Invocation timing state for the frame throttle."""
    min_interval: float = 0.1
    last_run_timestamp: Optional[float] = None


@dataclass
class SegmentationStats:
    """
    Summary of one pipeline execution.

    `class_distribution` is only filled on frames where statistics
    collection ran; it is empty otherwise.
    """
    generation: int
    target_class_id: int
    resolver_mode: ResolverMode
    target_pixel_count: int = 0
    total_pixel_count: int = 0
    target_detected: bool = False
    class_distribution: ClassHistogram = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def target_coverage(self) -> float:
        """Fraction of the frame covered by the target class."""
        if self.total_pixel_count == 0:
            return 0.0
        return self.target_pixel_count / self.total_pixel_count
