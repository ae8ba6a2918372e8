"""
Tests for the composed wall mask pipeline.
"""

import logging
import pytest
import numpy as np
import sys
import threading
from pathlib import Path
from unittest import mock

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from wallseg_stack.config import PipelineConfig
from wallseg_stack.core.exceptions import UnsupportedOutputShape
from wallseg_stack.core.pipeline import WallMaskPipeline
from wallseg_stack.core.types import ResolverMode, TensorShape
from wallseg_stack.perception import tensor_decoder


SCENARIO_4X4 = [9, 0, 0, 0,
                0, 9, 9, 0,
                0, 9, 9, 0,
                0, 0, 0, 9]


def coverage_buffer(class_id: int, fraction: float, size: int = 10) -> np.ndarray:
    """Single-channel buffer where `class_id` covers `fraction` of the frame."""
    values = np.zeros(size * size, dtype=np.float32)
    values[: int(round(fraction * size * size))] = class_id
    return values


def plain_config(**overrides) -> PipelineConfig:
    """Config with filtering, smoothing and throttling disabled."""
    settings = dict(
        enable_noise_reduction=False,
        enable_temporal_smoothing=False,
        min_invocation_interval=0.0,
    )
    settings.update(overrides)
    return PipelineConfig(**settings)


class TestPipelineScenarios:
    """End-to-end behavior on small synthetic tensors."""

    def test_fixed_id_scenario(self):
        pipeline = WallMaskPipeline(plain_config(enable_adaptive_detection=False, target_class_id=9))

        mask = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)

        expected = np.array(SCENARIO_4X4).reshape(4, 4) == 9
        assert np.array_equal(mask.data, expected)
        assert pipeline.resolver_state.mode == ResolverMode.FIXED

    def test_no_target_gives_empty_mask(self):
        pipeline = WallMaskPipeline(plain_config(enable_adaptive_detection=False, target_class_id=9))

        mask = pipeline.run(np.zeros(16), (4, 4, 1), now=0.0)

        assert mask.shape == (4, 4)
        assert mask.pixel_count == 0

    def test_adaptive_lock_in(self):
        config = plain_config(
            target_class_id=1,
            candidate_class_ids=(1, 2, 7, 4, 5),
            lock_coverage_fraction=0.05,
        )
        pipeline = WallMaskPipeline(config)
        shape = TensorShape(10, 10, 1)

        for frame in range(120):
            fraction = 0.6 if frame < 60 else 0.0
            pipeline.run(coverage_buffer(7, fraction), shape, now=float(frame))
            if frame >= 1:
                assert pipeline.is_locked

        assert pipeline.resolver_state.mode == ResolverMode.LOCKED
        assert pipeline.target_class_id == 7

    def test_multi_channel_probability_mode(self):
        scores = np.zeros((2, 2, 3), dtype=np.float32)
        scores[0, 0] = [0.1, 0.1, 0.8]
        scores[0, 1] = [0.3, 0.3, 0.4]
        scores[1, 0] = [0.9, 0.05, 0.05]
        scores[1, 1] = [0.2, 0.1, 0.7]
        config = plain_config(
            enable_adaptive_detection=False,
            target_class_id=2,
            use_argmax_mode=False,
            confidence_threshold=0.5,
        )

        mask = WallMaskPipeline(config).run(scores.ravel(), (2, 2, 3), now=0.0)

        assert mask.data.tolist() == [[True, False], [False, True]]

    def test_soft_output(self):
        config = plain_config(enable_adaptive_detection=False, target_class_id=9, soft_output=True)
        mask = WallMaskPipeline(config).run(SCENARIO_4X4, (4, 4, 1), now=0.0)
        assert mask.is_soft
        assert mask.data[0, 0] == 1.0

    def test_temporal_smoothing_holds_previous(self):
        config = plain_config(
            enable_adaptive_detection=False,
            target_class_id=9,
            enable_temporal_smoothing=True,
            smoothing_factor=1.0,
        )
        pipeline = WallMaskPipeline(config)

        first = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)
        second = pipeline.run(np.zeros(16), (4, 4, 1), now=1.0)

        assert np.array_equal(second.data, first.data)
        assert second.generation == 2

    @pytest.mark.parametrize("alpha", [0.3, 0.7])
    def test_temporal_smoothing_follows_persistent_change(self, alpha):
        config = plain_config(
            enable_adaptive_detection=False,
            target_class_id=9,
            enable_temporal_smoothing=True,
            smoothing_factor=alpha,
        )
        pipeline = WallMaskPipeline(config)

        pipeline.run(np.zeros(16), (4, 4, 1), now=0.0)
        counts = [
            pipeline.run(np.full(16, 9.0), (4, 4, 1), now=float(frame)).pixel_count
            for frame in range(1, 100)
        ]

        assert counts[2] == 16
        assert counts[-1] == 16

    def test_default_smoothing_shows_lock_in(self):
        config = plain_config(
            target_class_id=1,
            candidate_class_ids=(1, 7),
            enable_temporal_smoothing=True,
        )
        assert config.smoothing_factor == 0.3
        pipeline = WallMaskPipeline(config)

        first = pipeline.run(np.zeros(100), (10, 10, 1), now=0.0)
        assert first.pixel_count == 0

        for frame in range(1, 4):
            mask = pipeline.run(coverage_buffer(7, 0.5), (10, 10, 1), now=float(frame))

        assert pipeline.is_locked
        assert mask.pixel_count == 50

    def test_resolution_change_recovers(self):
        config = plain_config(enable_adaptive_detection=False, target_class_id=9,
                              enable_temporal_smoothing=True)
        pipeline = WallMaskPipeline(config)

        pipeline.run(np.full(64, 9.0), (8, 8, 1), now=0.0)
        mask = pipeline.run(np.zeros(36), (6, 6, 1), now=1.0)

        assert mask.shape == (6, 6)
        assert mask.pixel_count == 0


class TestPipelineThrottle:
    """Tests for throttled invocations."""

    def test_second_call_within_interval_is_skipped(self):
        pipeline = WallMaskPipeline(plain_config(min_invocation_interval=0.1))

        with mock.patch.object(tensor_decoder, "decode", wraps=tensor_decoder.decode) as spy:
            first = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)
            second = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.01)

        assert second is first
        assert spy.call_count == 1
        assert pipeline.generation == 1

    def test_runs_again_after_interval(self):
        pipeline = WallMaskPipeline(plain_config(min_invocation_interval=0.1))

        first = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)
        later = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.2)

        assert later is not first
        assert later.generation == 2

    def test_uses_clock_without_now(self):
        times = iter([0.0, 0.05])
        pipeline = WallMaskPipeline(
            plain_config(min_invocation_interval=0.1), clock=lambda: next(times)
        )

        first = pipeline.run(SCENARIO_4X4, (4, 4, 1))
        assert pipeline.run(SCENARIO_4X4, (4, 4, 1)) is first


class TestPipelineErrors:
    """Tests for per-frame error recovery."""

    def test_unsupported_shape_keeps_previous_mask(self):
        pipeline = WallMaskPipeline(plain_config())
        good = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)

        result = pipeline.run(np.zeros(49), (1, 1, 7, 7), now=1.0)

        assert result is good
        assert pipeline.generation == 1

    def test_unsupported_shape_on_first_frame_raises(self):
        pipeline = WallMaskPipeline(plain_config())
        with pytest.raises(UnsupportedOutputShape):
            pipeline.run(np.zeros(15), (4, 4, 1), now=0.0)

    def test_rejected_frames_counted(self):
        pipeline = WallMaskPipeline(plain_config())
        with pytest.raises(UnsupportedOutputShape):
            pipeline.run(np.zeros(15), (4, 4, 1), now=0.0)

        pipeline.run(SCENARIO_4X4, (4, 4, 1), now=1.0)
        for frame in range(3):
            pipeline.run(np.zeros(49), (1, 1, 7, 7), now=2.0 + frame)

        assert pipeline.rejected_frames == 4
        assert pipeline.generation == 1

    def test_warning_limits_are_per_instance(self, caplog):
        first = WallMaskPipeline(plain_config())
        second = WallMaskPipeline(plain_config())
        for pipeline in (first, second):
            pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)

        with caplog.at_level(logging.WARNING, logger="wallseg"):
            first.run(np.zeros(49), (1, 1, 7, 7), now=1.0)
            second.run(np.zeros(49), (1, 1, 7, 7), now=1.0)

        warnings = [r for r in caplog.records if "Unsupported output shape" in r.getMessage()]
        assert len(warnings) == 2

    def test_rejected_frame_does_not_consume_interval(self):
        pipeline = WallMaskPipeline(plain_config(min_invocation_interval=0.1))
        pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)

        pipeline.run(np.zeros(15), (4, 4, 1), now=0.2)
        mask = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.21)

        assert mask.generation == 2


class TestPipelineLifecycle:
    """Tests for callbacks, statistics, reset and dispose."""

    def test_callback_receives_mask_and_stats(self):
        received = []
        config = plain_config(enable_adaptive_detection=False, target_class_id=9,
                              min_detection_pixels=3)
        pipeline = WallMaskPipeline.create(config, on_mask=lambda m, s: received.append((m, s)))

        mask = pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)

        assert len(received) == 1
        got_mask, stats = received[0]
        assert got_mask is mask
        assert stats.target_class_id == 9
        assert stats.target_pixel_count == mask.pixel_count
        assert stats.total_pixel_count == 16
        assert stats.target_coverage == pytest.approx(mask.pixel_count / 16)
        assert stats.target_detected
        assert pipeline.last_stats is stats

    def test_callback_not_called_when_throttled(self):
        calls = []
        pipeline = WallMaskPipeline(plain_config(min_invocation_interval=1.0),
                                    on_mask=lambda m, s: calls.append(m))
        pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)
        pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.5)
        assert len(calls) == 1

    def test_statistics_collection_interval(self):
        config = plain_config(collect_statistics=True, statistics_interval=2)
        pipeline = WallMaskPipeline(config)

        distributions = []
        for frame in range(3):
            pipeline.run(SCENARIO_4X4, (4, 4, 1), now=float(frame))
            distributions.append(pipeline.last_stats.class_distribution)

        assert distributions[0] == {0: 10, 9: 6}
        assert distributions[1] == {}
        assert distributions[2] == {0: 10, 9: 6}

    def test_reset_clears_lock_and_history(self):
        config = plain_config(target_class_id=1, candidate_class_ids=(1, 7))
        pipeline = WallMaskPipeline(config)
        pipeline.run(coverage_buffer(7, 0.5), (10, 10, 1), now=0.0)
        assert pipeline.is_locked

        pipeline.reset()

        assert not pipeline.is_locked
        assert pipeline.last_mask is None
        assert pipeline.target_class_id == 1

    def test_dispose(self):
        with WallMaskPipeline(plain_config()) as pipeline:
            pipeline.run(SCENARIO_4X4, (4, 4, 1), now=0.0)

        assert pipeline.is_disposed
        with pytest.raises(RuntimeError):
            pipeline.run(SCENARIO_4X4, (4, 4, 1), now=1.0)

    def test_concurrent_runs_are_serialized(self):
        pipeline = WallMaskPipeline(plain_config(enable_temporal_smoothing=True))
        errors = []

        def worker():
            try:
                for i in range(10):
                    pipeline.run(SCENARIO_4X4, (4, 4, 1), now=float(i))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert not errors
        assert pipeline.generation == 40


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
