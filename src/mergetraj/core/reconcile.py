"""
Frame reconciliation between input trajectories and an existing merged output.

Given the number of frames already in the output, walk the ordered input
files and decide for each one how many of its frames are already represented
(skip) and how many still need to be written.
"""
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergePlan:
    """Per-file decision produced by the Reconciler."""
    available: int # Frames the file contributes after the skip-first-frame adjustment
    to_skip: int
    to_write: int
    start_index: int # Raw index of the first frame to read from the file
    start_global: int # Global merged index of the first written frame

    @property
    def fully_merged(self) -> bool:
        return self.to_write == 0


def adjusted_frame_count(n_frames: int, skip_first_frame: bool) -> int:
    """Frames a file contributes; a duplicated starting structure is dropped."""
    if skip_first_frame and n_frames > 1:
        return n_frames - 1
    return n_frames


class Reconciler:
    """
    Running reconciliation state for one merge run.

    Args:
        target: Frames already present in the output when the run started
        skip_first_frame: Drop frame zero of every multi-frame input
    """

    def __init__(self, target: int, skip_first_frame: bool = False):
        if target < 0:
            raise ValueError("target must be non-negative.")
        self.target = target
        self.skip_first_frame = skip_first_frame
        self.previous_frames = 0

    def plan(self, n_frames: int) -> MergePlan:
        """Plan the next input file given its raw frame count and claim its skipped frames."""
        available = adjusted_frame_count(n_frames, self.skip_first_frame)
        if self.previous_frames + available <= self.target:
            plan = MergePlan(available=available, to_skip=available, to_write=0,
                             start_index=n_frames, start_global=self.previous_frames + available)
            self.previous_frames += available
            return plan

        to_skip = max(self.target - self.previous_frames, 0)
        offset = 1 if (self.skip_first_frame and n_frames > 1) else 0
        self.previous_frames += to_skip
        return MergePlan(available=available, to_skip=to_skip, to_write=available - to_skip,
                         start_index=to_skip + offset, start_global=self.previous_frames)

    def frame_written(self) -> int:
        """Record one newly written frame; returns its global merged index."""
        index = self.previous_frames
        self.previous_frames += 1
        return index

    @property
    def frames_total(self) -> int:
        return max(self.target, self.previous_frames)
