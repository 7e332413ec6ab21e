"""
Periodic-image correction and recentering of trajectory frames.

All operations work on whole molecule groups at once: per-group quantities
(centroids, radii) are reduced with numpy and broadcast back to atoms through
an atom-to-group index, so a frame is processed without a Python loop over
molecules.
"""
import numpy as np
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .frame import Frame
from .exceptions import ConfigurationError, MissingPeriodicData

logger = logging.getLogger(__name__)

# Fixed pass count, not iterated to convergence. Reimaging by molecule can
# move the selection centroid, the second pass recenters after that.
CENTERING_PASSES = 2


def reimage_coords(coords: np.ndarray, box: np.ndarray) -> np.ndarray:
    """Wrap coordinates into the primary image [-L/2, L/2] along each axis."""
    n_images = np.sign(coords) * np.floor(np.abs(coords) / box + 0.5)
    return coords - n_images * box


class MoleculePartition:
    """Disjoint atom-index groups covering every atom of the model."""

    def __init__(self, groups: Sequence[np.ndarray], n_atoms: int):
        groups = [np.asarray(g, dtype=np.intp).reshape(-1) for g in groups]
        if any(g.size == 0 for g in groups):
            raise ValueError("Molecule groups must contain at least one atom.")
        flat = np.sort(np.concatenate(groups)) if groups else np.empty(0, dtype=np.intp)
        if flat.size != n_atoms or not np.array_equal(flat, np.arange(n_atoms)):
            raise ValueError(f"Molecule groups must be disjoint and cover all {n_atoms} atoms.")

        self.groups = groups
        self.n_atoms = n_atoms
        self.group_of = np.empty(n_atoms, dtype=np.intp)
        for i, g in enumerate(groups):
            self.group_of[g] = i
        self.first_atom = np.array([g[0] for g in groups], dtype=np.intp)
        self.sizes = np.array([g.size for g in groups], dtype=np.intp)

    def __len__(self) -> int:
        return len(self.groups)

    def centroids(self, coords: np.ndarray) -> np.ndarray:
        sums = np.zeros((len(self.groups), 3), dtype=np.float64)
        np.add.at(sums, self.group_of, coords)
        return sums / self.sizes[:, None]

    def radii(self, coords: np.ndarray) -> np.ndarray:
        """Largest distance from each group's first atom to any atom of the group."""
        ref = coords[self.first_atom[self.group_of]]
        dist = np.linalg.norm(coords - ref, axis=1)
        radii = np.zeros(len(self.groups), dtype=np.float64)
        np.maximum.at(radii, self.group_of, dist)
        return radii

    def reimage(self, coords: np.ndarray, box: np.ndarray, which: Optional[np.ndarray] = None) -> None:
        """Translate each group (or each selected group) so its centroid lies in the primary image."""
        centroids = self.centroids(coords)
        shift = reimage_coords(centroids, box) - centroids
        if which is not None:
            shift[~which] = 0.0
        coords += shift[self.group_of]

    def merge_images(self, coords: np.ndarray, box: np.ndarray, threshold: float) -> np.ndarray:
        """
        Put the atoms of broken groups into the image of the group's first atom.

        Only groups with more than one atom and a radius above threshold are
        touched. Returns the boolean mask of groups that were merged.
        """
        broken = (self.sizes > 1) & (self.radii(coords) > threshold)
        if not broken.any():
            return broken
        atoms = broken[self.group_of]
        ref = coords[self.first_atom[self.group_of[atoms]]]
        coords[atoms] = ref + reimage_coords(coords[atoms] - ref, box)
        return broken


@dataclass(frozen=True, eq=False)
class CenteringSelections:
    """Atom indices used for centering; full is exclusive with xy and z."""
    full: Optional[np.ndarray] = None
    xy: Optional[np.ndarray] = None
    z: Optional[np.ndarray] = None

    def __post_init__(self):
        if self.full is not None and (self.xy is not None or self.z is not None):
            raise ConfigurationError("Can't specify both full centering and either xy or z centering.")
        for name in ('full', 'xy', 'z'):
            sel = getattr(self, name)
            if sel is not None:
                sel = np.asarray(sel, dtype=np.intp).reshape(-1)
                if sel.size == 0:
                    raise ConfigurationError(f"The {name} centering selection matches no atoms.")
                object.__setattr__(self, name, sel)

    @property
    def active(self) -> bool:
        return self.full is not None or self.xy is not None or self.z is not None

    def reference(self, coords: np.ndarray) -> np.ndarray:
        """Position of the first selected atom, restricted to the centered axes."""
        if self.full is not None:
            return coords[self.full[0]].copy()
        ref = np.zeros(3, dtype=np.float64)
        if self.xy is not None:
            ref[:2] = coords[self.xy[0], :2]
        if self.z is not None:
            ref[2] = coords[self.z[0], 2]
        return ref

    def centroid(self, coords: np.ndarray) -> np.ndarray:
        if self.full is not None:
            return coords[self.full].mean(axis=0)
        centroid = np.zeros(3, dtype=np.float64)
        if self.xy is not None:
            centroid[:2] = coords[self.xy, :2].mean(axis=0)
        if self.z is not None:
            centroid[2] = coords[self.z, 2].mean()
        return centroid


class ReimagingEngine:
    """
    Apply molecule fixing and recentering to frames.

    Args:
        partition: Molecule groups; required when any policy is active
        centering: Centering selections (may be inactive)
        selection_is_split: Pre-center on a single selection atom before the centroid passes
        fix_imaging: Merge molecules split across image boundaries
    """

    def __init__(self, partition: Optional[MoleculePartition] = None,
                 centering: Optional[CenteringSelections] = None,
                 selection_is_split: bool = False, fix_imaging: bool = False):
        self.partition = partition
        self.centering = centering or CenteringSelections()
        self.selection_is_split = selection_is_split
        self.fix_imaging = fix_imaging
        if self.active and partition is None:
            raise ConfigurationError("Reimaging requires a molecule partition.")

    @property
    def active(self) -> bool:
        return self.fix_imaging or self.centering.active

    def apply(self, frame: Frame) -> Frame:
        if not self.active:
            return frame
        if frame.box is None:
            raise MissingPeriodicData("Reimaging and centering require frames with a periodic box.")
        if frame.n_atoms != self.partition.n_atoms:
            raise ValueError(f"Frame has {frame.n_atoms} atoms, partition covers {self.partition.n_atoms}.")

        box = frame.box
        coords = np.array(frame.coords, dtype=np.float64)

        if self.fix_imaging:
            threshold = box.min() / 2.0
            broken = self.partition.merge_images(coords, box, threshold)
            if broken.any():
                self.partition.reimage(coords, box, which=broken)
                logger.debug(f"Merged images of {int(broken.sum())} broken molecules.")

        if self.centering.active:
            if self.selection_is_split:
                coords -= self.centering.reference(coords)
                self.partition.reimage(coords, box)
            for _ in range(CENTERING_PASSES):
                coords -= self.centering.centroid(coords)
                self.partition.reimage(coords, box)

        return frame.with_coords(coords)
