"""
Frame sources: sequential, seekable access to input trajectory frames.

Every source exposes the same small interface to the merge driver:
frame_count(), seek_frame(index), read_next_frame(), coordinates() and box().
After seek_frame(i) the next read_next_frame() loads frame i.
"""
import numpy as np
from pathlib import Path
import logging
from abc import ABC, abstractmethod
from typing import Optional, Union, Callable

from ..core.frame import Frame
from ..core.exceptions import AtomCountMismatch, ConfigurationError

# Try to import OVITO, but don't fail if it's not available
try:
    from ovito.io import import_file
    OVITO_AVAILABLE = True
except ImportError as e:
    logging.getLogger(__name__).debug(f"OVITO import failed: {e}")
    OVITO_AVAILABLE = False

logger = logging.getLogger(__name__)

VALID_FORMATS = ['auto', 'mdanalysis', 'lammps', 'vasp_outcar']


class FrameSource(ABC):
    """Abstract interface over one input trajectory with a fixed atom count."""

    def __init__(self, n_atoms: int):
        self.n_atoms = n_atoms
        self._cursor = 0
        self._current: Optional[Frame] = None

    @abstractmethod
    def frame_count(self) -> int:
        pass

    @abstractmethod
    def _load_frame(self, index: int) -> Frame:
        pass

    def seek_frame(self, index: int) -> None:
        if not 0 <= index <= self.frame_count():
            raise IndexError(f"Cannot seek to frame {index} of {self.frame_count()}.")
        self._cursor = index

    def read_next_frame(self) -> bool:
        if self._cursor >= self.frame_count():
            return False
        frame = self._load_frame(self._cursor)
        if frame.n_atoms != self.n_atoms:
            raise AtomCountMismatch(f"Frame {self._cursor} has {frame.n_atoms} atoms, model has {self.n_atoms}.")
        self._current = frame
        self._cursor += 1
        return True

    def current_frame(self) -> Frame:
        if self._current is None:
            raise RuntimeError("No frame has been read yet.")
        return self._current

    def coordinates(self) -> np.ndarray:
        return self.current_frame().coords

    def box(self) -> Optional[np.ndarray]:
        return self.current_frame().box

    def close(self) -> None:
        pass

    def __enter__(self) -> 'FrameSource':
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class ArrayFrameSource(FrameSource):
    """In-memory frames, e.g. from a previous analysis step."""

    def __init__(self, positions: np.ndarray, boxes: Optional[np.ndarray] = None):
        positions = np.asarray(positions, dtype=np.float64)
        if positions.ndim != 3 or positions.shape[2] != 3:
            raise ValueError("Positions must be 3D (frames, atoms, xyz) and last dimension must be 3.")
        if boxes is not None:
            boxes = np.asarray(boxes, dtype=np.float64)
            if boxes.shape != (positions.shape[0], 3):
                raise ValueError(f"Boxes must have shape ({positions.shape[0]}, 3), got {boxes.shape}")
        super().__init__(positions.shape[1])
        self.positions = positions
        self.boxes = boxes

    def frame_count(self) -> int:
        return self.positions.shape[0]

    def _load_frame(self, index: int) -> Frame:
        box = None if self.boxes is None else self.boxes[index]
        return Frame(self.positions[index], box)


def _orthogonal_box(dimensions, source_name: str) -> Optional[np.ndarray]:
    """Convert an (a, b, c, alpha, beta, gamma) unit cell to rectangular extents."""
    if dimensions is None:
        return None
    dims = np.asarray(dimensions, dtype=np.float64)
    lengths = dims[:3]
    if np.allclose(lengths, 0.0):
        return None
    if np.any(lengths <= 0.0):
        logger.warning(f"{source_name}: cell lengths {lengths} are not all positive; treating frame as non-periodic.")
        return None
    if dims.size == 6 and not np.allclose(dims[3:], 90.0, atol=1e-3):
        logger.warning(f"{source_name}: non-orthogonal cell angles {dims[3:]} ignored; using box lengths only.")
    return lengths


class MDAnalysisFrameSource(FrameSource):
    """Frame source backed by any MDAnalysis coordinate reader (DCD, XTC, TRR, NCDF, ...)."""

    def __init__(self, filename: Union[str, Path], n_atoms: int, file_format: Optional[str] = None):
        from MDAnalysis.coordinates.core import reader

        self.filepath = Path(filename)
        if not self.filepath.exists():
            raise FileNotFoundError(f"Trajectory file not found: {filename}")
        super().__init__(n_atoms)
        self._reader = reader(str(self.filepath), format=file_format)
        if self._reader.n_atoms != n_atoms:
            self._reader.close()
            raise AtomCountMismatch(
                f"Trajectory {self.filepath.name} has {self._reader.n_atoms} atoms, but model has {n_atoms}.")

    def frame_count(self) -> int:
        return self._reader.n_frames

    def _load_frame(self, index: int) -> Frame:
        ts = self._reader[index]
        return Frame(ts.positions, _orthogonal_box(ts.dimensions, self.filepath.name))

    def close(self) -> None:
        self._reader.close()


class OvitoFrameSource(FrameSource):
    """Frame source for LAMMPS dump and VASP OUTCAR inputs, loaded through OVITO."""

    _OVITO_FORMATS = {'lammps': 'lammps/dump', 'vasp_outcar': 'vasp/outcar'}

    def __init__(self, filename: Union[str, Path], n_atoms: int, file_format: str = 'lammps'):
        if not OVITO_AVAILABLE:
            raise ImportError("OVITO is not available. Please install OVITO Python to read LAMMPS or OUTCAR inputs.")
        self.filepath = Path(filename)
        if not self.filepath.exists():
            raise FileNotFoundError(f"Trajectory file not found: {filename}")
        super().__init__(n_atoms)
        ovito_fmt = self._OVITO_FORMATS[file_format]
        logger.debug(f"OVITO load format: {ovito_fmt}")
        try:
            self._pipeline = import_file(str(self.filepath), input_format=ovito_fmt)
        except Exception as e:
            raise RuntimeError(f"OVITO import of '{self.filepath.name}' failed: {e}") from e

    def frame_count(self) -> int:
        return self._pipeline.source.num_frames

    def _load_frame(self, index: int) -> Frame:
        data = self._pipeline.compute(index)
        if not (data and hasattr(data, 'particles') and data.particles):
            raise RuntimeError(f"OVITO: could not compute frame {index} of {self.filepath.name}.")
        positions = np.array(data.particles.positions, dtype=np.float64)
        box = None
        if hasattr(data, 'cell') and data.cell is not None:
            h_matrix = np.array(data.cell.matrix, dtype=np.float64)[:3, :3]
            if not np.allclose(h_matrix - np.diag(np.diag(h_matrix)), 0.0):
                logger.warning(f"{self.filepath.name}: triclinic cell tilt ignored; using box lengths only.")
            box = _orthogonal_box(np.diag(h_matrix), self.filepath.name)
        return Frame(positions, box)


def detect_file_format(filename: Union[str, Path], file_format: str = 'auto') -> str:
    if file_format not in VALID_FORMATS:
        raise ConfigurationError(f"Unsupported file format. Must be one of: {VALID_FORMATS}")
    if file_format != 'auto':
        return file_format
    suffix = Path(filename).suffix.lower()
    if suffix == '.outcar' or Path(filename).name.upper() == 'OUTCAR':
        return 'vasp_outcar'
    if suffix in ('.lammpstrj', '.dump'):
        return 'lammps'
    return 'mdanalysis'


def open_frame_source(filename: Union[str, Path], n_atoms: int, file_format: str = 'auto') -> FrameSource:
    """Create the frame source matching an input file."""
    fmt = detect_file_format(filename, file_format)
    if fmt == 'mdanalysis':
        return MDAnalysisFrameSource(filename, n_atoms)
    return OvitoFrameSource(filename, n_atoms, file_format=fmt)


FrameSourceFactory = Callable[[str, int], FrameSource]
