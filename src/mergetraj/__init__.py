"""
mergetraj: merge, recenter and downsample molecular dynamics trajectories
"""

__version__ = "0.1.0"

# Core components
from .core.frame import Frame
from .core.reconcile import Reconciler, MergePlan
from .core.reimage import ReimagingEngine, MoleculePartition, CenteringSelections
from .core.exceptions import (
    MergeTrajError,
    ConfigurationError,
    TrajectoryFormatError,
    FrameCountExceeded,
    AtomCountMismatch,
    UnexpectedPeriodicData,
)

# IO components
from .io.dcd import DCDWriter, DCDReader, count_frames
from .io.loader import FrameSource, ArrayFrameSource, open_frame_source
from .io.model import SystemModel

# Utility components
from .utils.config_manager import ConfigManager, MergeConfig
from .utils.helpers import scanf_key, regex_key, sort_by_numeric_key

# Driver
from .core.merger import TrajectoryMerger, MergeResult, merge_trajectories

__all__ = [
    # Core
    'Frame',
    'Reconciler',
    'MergePlan',
    'ReimagingEngine',
    'MoleculePartition',
    'CenteringSelections',
    'MergeTrajError',
    'ConfigurationError',
    'TrajectoryFormatError',
    'FrameCountExceeded',
    'AtomCountMismatch',
    'UnexpectedPeriodicData',
    # IO
    'DCDWriter',
    'DCDReader',
    'count_frames',
    'FrameSource',
    'ArrayFrameSource',
    'open_frame_source',
    'SystemModel',
    # Utils
    'ConfigManager',
    'MergeConfig',
    'scanf_key',
    'regex_key',
    'sort_by_numeric_key',
    # Driver
    'TrajectoryMerger',
    'MergeResult',
    'merge_trajectories',
]
