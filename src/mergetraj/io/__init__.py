"""
Input/Output module for mergetraj.

This module provides the DCD trajectory codec, frame sources for input
trajectories, and the system model used for selections and molecules.
"""

from .dcd import DCDWriter, DCDReader, DCDHeader, count_frames
from .loader import FrameSource, ArrayFrameSource, MDAnalysisFrameSource, OvitoFrameSource, open_frame_source
from .model import SystemModel

__all__ = [
    'DCDWriter',
    'DCDReader',
    'DCDHeader',
    'count_frames',
    'FrameSource',
    'ArrayFrameSource',
    'MDAnalysisFrameSource',
    'OvitoFrameSource',
    'open_frame_source',
    'SystemModel',
]
