"""
Core frame data structure: one timestep of atomic coordinates.
"""
from dataclasses import dataclass
import numpy as np
from typing import Optional

from .exceptions import TrajectoryFormatError

@dataclass(frozen=True, eq=False)
class Frame:
    coords: np.ndarray
    box: Optional[np.ndarray] = None # Rectangular box extents (x, y, z); None for non-periodic frames

    def __post_init__(self):
        coords = np.array(self.coords, dtype=np.float64)
        if coords.ndim != 2 or coords.shape[1] != 3:
            raise ValueError(f"Coordinates must be 2D (atoms, xyz), got shape {coords.shape}.")
        coords.setflags(write=False)
        object.__setattr__(self, 'coords', coords)
        if self.box is not None:
            box = np.array(self.box, dtype=np.float64).reshape(-1)
            if box.shape != (3,):
                raise ValueError(f"Box must be a 3-element array, got {box.shape}")
            if not np.all(np.isfinite(box)) or np.any(box <= 0.0):
                raise TrajectoryFormatError(f"Box lengths must be positive, got {box}")
            box.setflags(write=False)
            object.__setattr__(self, 'box', box)

    @property
    def n_atoms(self) -> int:
        return self.coords.shape[0]

    @property
    def is_periodic(self) -> bool:
        return self.box is not None

    def with_coords(self, coords: np.ndarray) -> 'Frame':
        """Return a new frame with replaced coordinates and the same box."""
        return Frame(coords, self.box)
