"""
Core module for mergetraj.

This module provides the frame data structure, the reconciliation and
reimaging engines, and the error types. The merge driver lives in
mergetraj.core.merger.
"""

from .frame import Frame
from .reconcile import Reconciler, MergePlan, adjusted_frame_count
from .reimage import ReimagingEngine, MoleculePartition, CenteringSelections, reimage_coords
from .exceptions import (
    MergeTrajError,
    ConfigurationError,
    SortKeyError,
    TrajectoryFormatError,
    FrameCountExceeded,
    AtomCountMismatch,
    UnexpectedPeriodicData,
    MissingPeriodicData,
    CorruptTrajectoryError,
)

__all__ = [
    'Frame',
    'Reconciler',
    'MergePlan',
    'adjusted_frame_count',
    'ReimagingEngine',
    'MoleculePartition',
    'CenteringSelections',
    'reimage_coords',
    'MergeTrajError',
    'ConfigurationError',
    'SortKeyError',
    'TrajectoryFormatError',
    'FrameCountExceeded',
    'AtomCountMismatch',
    'UnexpectedPeriodicData',
    'MissingPeriodicData',
    'CorruptTrajectoryError',
]
