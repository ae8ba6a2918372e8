"""
Sources of raw segmentation output for the command-line runner.

Model execution happens outside this package; these sources replay
recorded network outputs or synthesize them for testing.
"""

import numpy as np
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from ..core.logging_config import get_logger
from ..core.types import RawOutput, TensorShape

logger = get_logger("perception.source")


class TensorSource(ABC):
    """Abstract base class for raw output sources."""

    @abstractmethod
    def initialize(self) -> bool:
        """Prepare the source. Returns True if successful."""
        pass

    @abstractmethod
    def read(self) -> Optional[RawOutput]:
        """Return the next raw output, or None when exhausted."""
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Release resources."""
        pass

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        """Check if source is ready."""
        pass


class MockTensorSource(TensorSource):
    """
    Synthetic network output: a wall band across the upper part of the
    frame with a sprinkle of single-pixel noise.
    """

    def __init__(
        self,
        height: int = 64,
        width: int = 64,
        num_classes: int = 21,
        wall_class_id: int = 9,
        num_frames: int = 30,
        single_channel: bool = False,
        noise_fraction: float = 0.01,
        seed: int = 0
    ):
        if not 0 <= wall_class_id < num_classes:
            raise ValueError(f"wall_class_id {wall_class_id} outside 0..{num_classes - 1}")
        self.height = height
        self.width = width
        self.num_classes = num_classes
        self.wall_class_id = wall_class_id
        self.num_frames = num_frames
        self.single_channel = single_channel
        self.noise_fraction = noise_fraction
        self._seed = seed
        self._rng: Optional[np.random.Generator] = None
        self._frames_read = 0
        self._initialized = False

    def initialize(self) -> bool:
        logger.info("Mock tensor source initialized (synthetic output)")
        self._rng = np.random.default_rng(self._seed)
        self._frames_read = 0
        self._initialized = True
        return True

    def class_grid(self) -> np.ndarray:
        """Ground-truth class ids of the synthetic scene (before noise)."""
        h, w = self.height, self.width
        grid = np.zeros((h, w), dtype=np.int64)
        grid[: int(h * 0.6), :] = self.wall_class_id
        return grid

    def read(self) -> Optional[RawOutput]:
        if not self._initialized:
            raise RuntimeError("Mock tensor source not initialized")
        if self._frames_read >= self.num_frames:
            return None
        self._frames_read += 1

        h, w = self.height, self.width
        grid = self.class_grid()

        noise = self._rng.random((h, w)) < self.noise_fraction
        grid[noise] = self._rng.integers(0, self.num_classes, size=int(noise.sum()))

        if self.single_channel:
            return RawOutput.from_buffer(
                grid.astype(np.float32), TensorShape(height=h, width=w, channels=1)
            )

        scores = self._rng.random((h, w, self.num_classes), dtype=np.float32) * 0.1
        rows, cols = np.indices((h, w))
        scores[rows, cols, grid] = 0.9
        return RawOutput.from_buffer(
            scores, TensorShape(height=h, width=w, channels=self.num_classes)
        )

    def cleanup(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized


class NpyTensorSource(TensorSource):
    """
    Replays network outputs saved as .npy files, in file name order.

    Arrays may be shaped (1, H, W, C), (H, W, C) or (H, W).
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self._files: List[Path] = []
        self._index = 0
        self._initialized = False

    def initialize(self) -> bool:
        if not self.directory.is_dir():
            logger.error(f"Tensor directory not found: {self.directory}")
            return False

        self._files = sorted(self.directory.glob("*.npy"))
        self._index = 0
        logger.info(f"Found {len(self._files)} tensor files in {self.directory}")
        self._initialized = True
        return True

    @staticmethod
    def shape_of(array: np.ndarray) -> TensorShape:
        """Tensor shape for a loaded array."""
        if array.ndim == 4:
            return TensorShape.from_any(array.shape)
        if array.ndim == 3:
            return TensorShape(height=array.shape[0], width=array.shape[1], channels=array.shape[2])
        if array.ndim == 2:
            return TensorShape(height=array.shape[0], width=array.shape[1], channels=1)
        raise ValueError(f"Cannot interpret array of shape {array.shape} as network output")

    def read(self) -> Optional[RawOutput]:
        if not self._initialized:
            raise RuntimeError("Npy tensor source not initialized")
        if self._index >= len(self._files):
            return None

        path = self._files[self._index]
        self._index += 1

        array = np.load(path)
        logger.debug(f"Loaded {path.name} with shape {array.shape}")
        return RawOutput.from_buffer(array, self.shape_of(array))

    def cleanup(self) -> None:
        self._files = []
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def current_name(self) -> Optional[str]:
        """Stem of the most recently read file."""
        if self._index == 0:
            return None
        return self._files[self._index - 1].stem
