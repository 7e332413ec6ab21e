"""
Merge driver: stream input trajectories into a merged (and optionally
downsampled) output, resuming from whatever the output already holds.
"""
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, List
from tqdm import tqdm

from .frame import Frame
from .reconcile import Reconciler
from .reimage import ReimagingEngine, MoleculePartition, CenteringSelections
from .exceptions import AtomCountMismatch
from ..io.dcd import DCDWriter, DCDReader, count_frames
from ..io.loader import open_frame_source, FrameSourceFactory
from ..io.model import SystemModel
from ..utils.config_manager import MergeConfig

logger = logging.getLogger(__name__)

DEFAULT_TITLES = ("Created by mergetraj",)


@dataclass
class MergeResult:
    target: int # Frames in the output before the run
    frames_total: int = 0
    frames_appended: int = 0
    downsampled_appended: int = 0
    files_skipped: List[str] = field(default_factory=list)
    files_merged: List[str] = field(default_factory=list)


class _LazyWriter:
    """Opens its DCDWriter on the first frame, when the periodicity of the data is known."""

    def __init__(self, path: Path, n_atoms: int, timestep: float, titles):
        self.path = path
        self.n_atoms = n_atoms
        self.timestep = timestep
        self.titles = titles
        self.writer: Optional[DCDWriter] = None

    def write(self, frame: Frame) -> None:
        if self.writer is None:
            self.writer = DCDWriter(self.path, self.n_atoms, timestep=self.timestep,
                                    has_box=frame.is_periodic, titles=self.titles, append=True)
        self.writer.write(frame)

    def close(self) -> None:
        if self.writer is not None:
            self.writer.close()


class TrajectoryMerger:
    """
    Merge an ordered list of input trajectories into one output trajectory.

    Re-running with the same inputs (or the same inputs followed by new ones)
    appends only the frames the output does not have yet.

    Args:
        config: Run configuration
        model: System model providing atom count, selections and molecules
        source_factory: Callable (path, n_atoms) -> FrameSource; defaults to
            open_frame_source with the configured input format
    """

    def __init__(self, config: MergeConfig, model: SystemModel,
                 source_factory: Optional[FrameSourceFactory] = None):
        self.config = config
        self.model = model
        self.n_atoms = model.n_atoms
        if source_factory is None:
            def source_factory(path, n_atoms):
                return open_frame_source(path, n_atoms, file_format=config.input_format)
        self.source_factory = source_factory
        self.engine = self._build_engine()

    def _build_engine(self) -> ReimagingEngine:
        cfg = self.config
        centering = CenteringSelections(
            full=self.model.select(cfg.center_selection) if cfg.center_selection else None,
            xy=self.model.select(cfg.xy_center_selection) if cfg.xy_center_selection else None,
            z=self.model.select(cfg.z_center_selection) if cfg.z_center_selection else None,
        )
        partition = None
        if cfg.needs_molecules:
            partition = MoleculePartition(self.model.molecules(), self.n_atoms)
        return ReimagingEngine(partition, centering,
                               selection_is_split=cfg.selection_is_split, fix_imaging=cfg.fix_imaging)

    def _check_existing_output(self, path: Path) -> None:
        if path.exists() and path.stat().st_size > 0:
            with DCDReader(path) as reader:
                if reader.n_atoms != self.n_atoms:
                    raise AtomCountMismatch(
                        f"Existing trajectory {path} has {reader.n_atoms} atoms, model has {self.n_atoms}.")

    def run(self) -> MergeResult:
        cfg = self.config
        output = Path(cfg.output)
        inputs = cfg.ordered_inputs()
        self._check_existing_output(output)

        target = count_frames(output)
        logger.info(f"Target trajectory {output} has {target} frames.")
        result = MergeResult(target=target)
        reconciler = Reconciler(target, skip_first_frame=cfg.skip_first_frame)

        titles = cfg.titles or DEFAULT_TITLES
        primary = _LazyWriter(output, self.n_atoms, cfg.timestep, titles)
        downsample = None
        if cfg.downsample_output:
            downsample_path = Path(cfg.downsample_output)
            self._check_existing_output(downsample_path)
            downsample = _LazyWriter(downsample_path, self.n_atoms, cfg.timestep, titles)

        try:
            for path in inputs:
                self._merge_file(path, reconciler, primary, downsample, result)
        finally:
            primary.close()
            if downsample is not None:
                downsample.close()

        result.frames_total = reconciler.frames_total
        logger.info(f"Merge complete: {result.frames_appended} new frames, {result.frames_total} total.")
        return result

    def _merge_file(self, path: str, reconciler: Reconciler, primary: _LazyWriter,
                    downsample: Optional[_LazyWriter], result: MergeResult) -> None:
        with self.source_factory(path, self.n_atoms) as source:
            plan = reconciler.plan(source.frame_count())
            if plan.fully_merged:
                logger.info(f"File: {path}: {plan.available} ( {reconciler.previous_frames} )\tSkipping trajectory")
                result.files_skipped.append(path)
                return

            logger.info(f"File: {path}: {plan.available} ( {plan.start_global + plan.to_write} )"
                        f"\tWriting {plan.to_write} frames.")
            source.seek_frame(plan.start_index)
            rate = self.config.downsample_rate
            with tqdm(total=plan.to_write, desc=f"Merging {Path(path).name}", unit="fr",
                      disable=not self.config.progress) as bar:
                while source.read_next_frame():
                    frame = self.engine.apply(source.current_frame())
                    primary.write(frame)
                    index = reconciler.frame_written()
                    result.frames_appended += 1
                    if downsample is not None and index % rate == 0:
                        downsample.write(frame)
                        result.downsampled_appended += 1
                    bar.update(1)
            result.files_merged.append(path)


def merge_trajectories(config: MergeConfig, model: Optional[SystemModel] = None,
                       source_factory: Optional[FrameSourceFactory] = None) -> MergeResult:
    """Load the model (unless given) and run one merge."""
    if model is None:
        model = SystemModel.from_file(config.model)
    return TrajectoryMerger(config, model, source_factory=source_factory).run()
