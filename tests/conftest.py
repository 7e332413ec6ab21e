import pytest
import numpy as np
import MDAnalysis as mda
from MDAnalysis.coordinates.memory import MemoryReader

from mergetraj.io.loader import ArrayFrameSource
from mergetraj.io.model import SystemModel
from mergetraj.core.exceptions import AtomCountMismatch


def make_universe(n_atoms, segments, bonds=None):
    """Empty universe with one residue per segment; segments is a list of (segid, size)."""
    sizes = [size for _, size in segments]
    assert sum(sizes) == n_atoms
    atom_resindex = np.repeat(np.arange(len(segments)), sizes)
    u = mda.Universe.empty(n_atoms, n_residues=len(segments), n_segments=len(segments),
                           atom_resindex=atom_resindex, residue_segindex=np.arange(len(segments)),
                           trajectory=True)
    u.add_TopologyAttr('segid', [segid for segid, _ in segments])
    u.add_TopologyAttr('name', [f"A{i}" for i in range(n_atoms)])
    if bonds is not None:
        u.add_TopologyAttr('bonds', bonds)
    return u


def write_mda_dcd(path, positions, dimensions=None):
    """Write frames with MDAnalysis' own DCD writer, to act as an upstream input file."""
    positions = np.asarray(positions, dtype=np.float32)
    n_frames, n_atoms, _ = positions.shape
    u = mda.Universe.empty(n_atoms, trajectory=True)
    if dimensions is not None:
        dimensions = np.tile(np.asarray(dimensions, dtype=np.float32), (n_frames, 1))
    u.load_new(positions, format=MemoryReader, dimensions=dimensions)
    with mda.Writer(str(path), n_atoms=n_atoms) as w:
        for _ in u.trajectory:
            w.write(u.atoms)
    return path


@pytest.fixture
def segmented_model():
    """10 atoms, no bonds, two segments of five atoms."""
    return SystemModel(make_universe(10, [('SEGA', 5), ('SEGB', 5)]))


@pytest.fixture
def bonded_model():
    """Six atoms in one segment: two 2-atom molecules and two free atoms."""
    return SystemModel(make_universe(6, [('SYS', 6)], bonds=[(0, 1), (3, 4)]))


@pytest.fixture
def indexed_positions():
    """Factory for trajectories whose every coordinate equals its frame index + offset."""
    def _make(n_frames, n_atoms, offset=0.0):
        values = np.arange(n_frames, dtype=np.float64) + offset
        return np.broadcast_to(values[:, None, None], (n_frames, n_atoms, 3)).copy()
    return _make


@pytest.fixture
def array_sources():
    """Source factory over a mutable {path: (positions, boxes)} registry."""
    registry = {}

    def factory(path, n_atoms):
        positions, boxes = registry[path]
        source = ArrayFrameSource(positions, boxes)
        if source.n_atoms != n_atoms:
            raise AtomCountMismatch(f"{path} has {source.n_atoms} atoms, model has {n_atoms}")
        return source

    factory.registry = registry
    return factory
