"""
Online discovery of the class id that represents walls.

Exported segmentation models disagree on the wall class index, so the
resolver can search a candidate list: every frame it measures how much of
the image each candidate covers, commits to the best candidate whose
coverage exceeds a fraction of the frame, and otherwise rotates the
provisional id through the list every `rotation_interval` frames.
"""

from typing import Optional, Tuple, TYPE_CHECKING
import numpy as np

from ..core.logging_config import get_logger
from ..core.types import ClassHistogram, ClassMap, ResolverMode, ResolverState

if TYPE_CHECKING:
    from ..config import PipelineConfig

logger = get_logger("perception.resolver")


def build_histogram(
    class_map: ClassMap,
    min_confidence: Optional[float] = None
) -> ClassHistogram:
    """
    Count pixels per class id.

    Args:
        class_map: Decoded class map
        min_confidence: If set and the map carries confidences, pixels
            below this confidence are not counted

    Returns:
        Mapping class id -> pixel count (classes with zero pixels omitted)
    """
    ids = class_map.class_ids
    if min_confidence is not None and class_map.has_confidences:
        ids = ids[class_map.confidences >= min_confidence]

    counts = np.bincount(ids.ravel())
    present = np.flatnonzero(counts)
    return {int(cid): int(counts[cid]) for cid in present}


def create_resolver_state(config: "PipelineConfig") -> ResolverState:
    """Initial resolver state: Searching if adaptive detection is on, else Fixed."""
    if not config.enable_adaptive_detection:
        return ResolverState(
            mode=ResolverMode.FIXED,
            current_target_id=config.target_class_id,
        )

    candidates = tuple(config.candidate_class_ids)
    # Start from the configured id when it is one of the candidates
    index = candidates.index(config.target_class_id) if config.target_class_id in candidates else 0

    return ResolverState(
        mode=ResolverMode.SEARCHING,
        current_target_id=candidates[index],
        candidate_ids=candidates,
        candidate_index=index,
    )


def _best_candidate(
    histogram: ClassHistogram,
    candidates: Tuple[int, ...],
    total_pixels: int,
    lock_fraction: float
) -> Tuple[Optional[int], float]:
    """Candidate with the highest coverage above `lock_fraction` (list order breaks ties)."""
    best_id, best_coverage = None, 0.0
    for candidate in candidates:
        coverage = histogram.get(candidate, 0) / total_pixels
        if coverage > lock_fraction and coverage > best_coverage:
            best_id, best_coverage = candidate, coverage
    return best_id, best_coverage


def resolve_target(
    class_map: ClassMap,
    state: ResolverState,
    config: "PipelineConfig"
) -> Tuple[int, ResolverState]:
    """
    Decide which class id is the target for this frame.

    Mutates `state` in place (Searching -> Locked transitions, candidate
    rotation) and returns it alongside the id.

    Args:
        class_map: Decoded class map for the current frame
        state: Resolver state owned by the calling pipeline
        config: Pipeline configuration

    Returns:
        (target class id, state)
    """
    if state.mode == ResolverMode.FIXED:
        return config.target_class_id, state

    if state.mode == ResolverMode.LOCKED:
        return state.current_target_id, state

    state.frame_count += 1
    total_pixels = class_map.size
    if total_pixels == 0:
        return state.current_target_id, state

    histogram = build_histogram(class_map, min_confidence=config.confidence_threshold)
    best_id, best_coverage = _best_candidate(
        histogram, state.candidate_ids, total_pixels, config.lock_coverage_fraction
    )

    if best_id is None:
        state.pending_id = None
        state.consecutive_coverage_count = 0
    else:
        if best_id == state.pending_id:
            state.consecutive_coverage_count += 1
        else:
            state.pending_id = best_id
            state.consecutive_coverage_count = 1

        if state.consecutive_coverage_count >= config.lock_confirmation_frames:
            state.mode = ResolverMode.LOCKED
            state.current_target_id = best_id
            state.candidate_index = state.candidate_ids.index(best_id)
            logger.info(
                f"Locked wall class {best_id} after {state.frame_count} frames "
                f"({best_coverage * 100:.1f}% coverage)"
            )
            return best_id, state

    target_id = state.candidate_ids[state.candidate_index]
    state.current_target_id = target_id

    if state.frame_count % config.rotation_interval == 0:
        state.candidate_index = (state.candidate_index + 1) % len(state.candidate_ids)
        state.current_target_id = state.candidate_ids[state.candidate_index]
        logger.info(f"Trying alternate wall class id {state.current_target_id}")

    return target_id, state


class ClassIdentityResolver:
    """
    Stateful wrapper around `resolve_target` for one pipeline.

    The state survives across frames; once locked it is only cleared by
    an explicit `reset()`.
    """

    def __init__(self, config: "PipelineConfig"):
        self.config = config
        self._state = create_resolver_state(config)

    def resolve(self, class_map: ClassMap) -> int:
        """Resolve the target id for one frame, updating internal state."""
        target_id, self._state = resolve_target(class_map, self._state, self.config)
        return target_id

    def reset(self) -> None:
        """Restart the search (or return to the fixed id)."""
        self._state = create_resolver_state(self.config)
        logger.info(f"Resolver reset ({self._state.mode.value})")

    @property
    def state(self) -> ResolverState:
        return self._state

    @property
    def target_class_id(self) -> int:
        return self._state.current_target_id

    @property
    def is_locked(self) -> bool:
        return self._state.is_locked
