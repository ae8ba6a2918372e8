"""
Command-line executor for the wall segmentation stack.

Replays network outputs through the wall mask pipeline:
1. Read a raw output tensor from the source
2. Run the pipeline (throttled on a simulated frame clock)
3. Write the stabilized mask as a PNG
4. Log telemetry
"""

import signal
import sys
import time
import argparse
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

import cv2

from .core.exceptions import InvalidConfiguration, UnsupportedOutputShape
from .core.logging_config import configure_logging, get_logger, LogLevel
from .core.pipeline import WallMaskPipeline
from .core.types import Mask, SegmentationStats
from .config import ConfigLoader, StackConfig
from .perception import TensorSource, MockTensorSource, NpyTensorSource

logger = get_logger("executor")


@dataclass
class ExecutorStats:
    """Runtime statistics for the executor."""
    frame_count: int = 0
    masks_computed: int = 0
    frames_rejected: int = 0
    avg_frame_time_ms: float = 0.0

    def update(self, frame_time: float) -> None:
        """Update statistics with latest frame time."""
        self.frame_count += 1
        # Exponential moving average
        alpha = 0.1
        self.avg_frame_time_ms = (
            alpha * (frame_time * 1000) +
            (1 - alpha) * self.avg_frame_time_ms
        )


class Executor:
    """
    Feeds a tensor source through one pipeline and saves the masks.
    """

    def __init__(
        self,
        stack_config: StackConfig,
        source: TensorSource,
        output_dir: Optional[Path] = None,
        fps: float = 30.0,
        telemetry_log_interval: int = 30
    ):
        """
        Initialize executor.

        Args:
            stack_config: System configuration
            source: Raw output source
            output_dir: Directory for mask PNGs (None = don't write)
            fps: Rate of the simulated frame clock fed to the throttle
            telemetry_log_interval: Frames between telemetry lines
        """
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")

        self.stack_config = stack_config
        self.source = source
        self.output_dir = Path(output_dir) if output_dir else None
        self.fps = fps
        self.telemetry_log_interval = telemetry_log_interval

        self._running = False
        self._stats = ExecutorStats()
        self._last_written_generation = 0

        self.pipeline = WallMaskPipeline.create(
            stack_config.pipeline,
            on_mask=self._on_mask
        )

    def _signal_handler(self, sig, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, shutting down...")
        self._running = False

    def _on_mask(self, mask: Mask, stats: SegmentationStats) -> None:
        self._stats.masks_computed += 1

    def start(self) -> bool:
        """
        Initialize the source and output directory.

        Returns:
            True if startup successful
        """
        if not self.source.initialize():
            logger.error("Failed to initialize tensor source")
            return False

        if self.output_dir is not None:
            self.output_dir.mkdir(parents=True, exist_ok=True)

        return True

    def stop(self) -> None:
        """Release the source and the pipeline."""
        self.source.cleanup()
        self.pipeline.dispose()
        logger.info("Executor stopped")

    def run(self) -> ExecutorStats:
        """
        Process frames until the source is exhausted or a signal arrives.

        Returns:
            Final executor statistics
        """
        if not self.start():
            return self._stats

        signal.signal(signal.SIGINT, self._signal_handler)
        self._running = True

        try:
            while self._running:
                raw = self.source.read()
                if raw is None:
                    break

                frame_start = time.perf_counter()
                self._process(raw)
                self._stats.update(time.perf_counter() - frame_start)

                if self._stats.frame_count % self.telemetry_log_interval == 0:
                    self._log_telemetry()
        finally:
            self.stop()

        self._log_telemetry()
        return self._stats

    def _process(self, raw) -> None:
        now = self._stats.frame_count / self.fps
        try:
            mask = self.pipeline.run(raw, now=now)
        except UnsupportedOutputShape as e:
            logger.warning(f"Skipping frame {self._stats.frame_count}: {e}")
            return
        finally:
            self._stats.frames_rejected = self.pipeline.rejected_frames

        if self.output_dir is not None and mask.generation != self._last_written_generation:
            path = self.output_dir / f"mask_{mask.generation:05d}.png"
            cv2.imwrite(str(path), mask.to_image())
            self._last_written_generation = mask.generation

    def _log_telemetry(self) -> None:
        """Log telemetry data."""
        stats = self.pipeline.last_stats
        wall = f"{stats.target_coverage * 100:.1f}%" if stats else "n/a"
        logger.info(
            f"[Frame {self._stats.frame_count}] "
            f"Masks: {self._stats.masks_computed} | "
            f"Rejected: {self._stats.frames_rejected} | "
            f"Frame: {self._stats.avg_frame_time_ms:.1f}ms | "
            f"Class: {self.pipeline.target_class_id} "
            f"({self.pipeline.resolver_state.mode.value}) | "
            f"Wall: {wall}"
        )


def main():
    """Entry point for the executor."""
    parser = argparse.ArgumentParser(
        description="Wall segmentation mask pipeline"
    )
    source_group = parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument(
        "--input-dir",
        type=str,
        help="Directory of .npy network outputs"
    )
    source_group.add_argument(
        "--mock",
        type=int,
        metavar="N",
        help="Process N synthetic frames"
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory to write mask PNGs to"
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        default=None,
        help="Path to configuration directory"
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=30.0,
        help="Simulated frame rate for throttling"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )

    args = parser.parse_args()

    config_dir = Path(args.config_dir) if args.config_dir else None
    loader = ConfigLoader(config_dir)

    try:
        stack_config = loader.load_stack_config()
    except InvalidConfiguration as e:
        configure_logging()
        logger.error(f"Invalid configuration ({e.field}): {e}")
        sys.exit(1)

    log_level = LogLevel.parse(args.log_level or stack_config.log_level)
    configure_logging(level=log_level, log_file=stack_config.log_file)

    if args.input_dir:
        source = NpyTensorSource(args.input_dir)
    else:
        source = MockTensorSource(num_frames=args.mock)

    executor = Executor(
        stack_config=stack_config,
        source=source,
        output_dir=Path(args.output_dir) if args.output_dir else None,
        fps=args.fps
    )

    executor.run()


if __name__ == "__main__":
    main()
