"""
DCD trajectory codec.

This module provides the binary writer used for merged output trajectories
and a matching reader. Every record is framed Fortran-style: a 4-byte length,
the payload, then the same length again. A file consists of

    header record   20 32-bit slots (frame count, step info, float timestep
                    in slot 9, periodicity flag in slot 10, version 27 in slot 19)
    title record    title count followed by 80-byte title strings
    atom record     atom count
    per frame       optional 6-value box record, then X, Y and Z records
                    of single-precision coordinates in atom order

The declared frame count in the header is advisory only: the true number of
frames is always derived from the file size.
"""
import io
import struct
import numpy as np
from pathlib import Path
import logging
from typing import Optional, Union, List, Sequence, Iterator
from dataclasses import dataclass, field

from ..core.frame import Frame
from ..core.exceptions import (
    FrameCountExceeded,
    AtomCountMismatch,
    UnexpectedPeriodicData,
    MissingPeriodicData,
    CorruptTrajectoryError,
)

logger = logging.getLogger(__name__)

HEADER_SLOTS = 20
TITLE_LENGTH = 80
CHARMM_VERSION = 27
DEFAULT_TIMESTEP = 0.001

_MARKER = struct.Struct('<I')
# Slot 9 holds the timestep as a float overlaid on the integer block.
_HEADER = struct.Struct('<9if10i')
_BOX_DTYPES = {24: np.dtype('<f4'), 48: np.dtype('<f8')}


def fix_string_size(text: str, n: int = TITLE_LENGTH) -> bytes:
    """Space-pad or truncate a string to exactly n bytes."""
    raw = text.encode('ascii', errors='replace')
    if len(raw) < n:
        return raw + b' ' * (n - len(raw))
    return raw[:n]


def pack_record(payload: bytes) -> bytes:
    marker = _MARKER.pack(len(payload))
    return marker + payload + marker


def read_record(fh) -> bytes:
    """Read one framed record, validating both length markers."""
    head = fh.read(_MARKER.size)
    if len(head) != _MARKER.size:
        raise CorruptTrajectoryError("Unexpected end of file while reading record marker.")
    (length,) = _MARKER.unpack(head)
    payload = fh.read(length)
    tail = fh.read(_MARKER.size)
    if len(payload) != length or len(tail) != _MARKER.size:
        raise CorruptTrajectoryError(f"Unexpected end of file inside a {length}-byte record.")
    if _MARKER.unpack(tail)[0] != length:
        raise CorruptTrajectoryError(f"Record marker mismatch: {length} != {_MARKER.unpack(tail)[0]}.")
    return payload


@dataclass
class DCDHeader:
    n_atoms: int
    n_frames: int # Declared count, never trusted for reading
    timestep: float = DEFAULT_TIMESTEP
    has_box: bool = False
    titles: List[str] = field(default_factory=list)
    start: int = 1
    interval: int = 1

    def to_bytes(self) -> bytes:
        slots = [0] * HEADER_SLOTS
        slots[0] = self.n_frames
        slots[1] = self.start
        slots[2] = self.interval
        slots[3] = self.n_frames
        slots[7] = self.n_atoms * 3 - 6
        slots[10] = int(self.has_box)
        slots[19] = CHARMM_VERSION
        block = _HEADER.pack(*slots[:9], float(self.timestep), *slots[10:])

        title_block = struct.pack('<I', len(self.titles))
        title_block += b''.join(fix_string_size(t) for t in self.titles)

        return (pack_record(block)
                + pack_record(title_block)
                + pack_record(struct.pack('<I', self.n_atoms)))

    @classmethod
    def from_stream(cls, fh) -> 'DCDHeader':
        block = read_record(fh)
        if len(block) != _HEADER.size:
            raise CorruptTrajectoryError(
                f"Header record is {len(block)} bytes, expected {_HEADER.size}. "
                "Only headers written by this codec are supported.")
        values = _HEADER.unpack(block)
        if values[19] != CHARMM_VERSION:
            raise CorruptTrajectoryError(f"Unexpected header version sentinel {values[19]}.")

        title_block = read_record(fh)
        if len(title_block) < 4:
            raise CorruptTrajectoryError("Title record too short.")
        (n_titles,) = struct.unpack('<I', title_block[:4])
        if len(title_block) != 4 + TITLE_LENGTH * n_titles:
            raise CorruptTrajectoryError(f"Title record size does not match {n_titles} titles.")
        titles = [
            title_block[4 + TITLE_LENGTH * i: 4 + TITLE_LENGTH * (i + 1)].decode('ascii', errors='replace').rstrip()
            for i in range(n_titles)
        ]

        atom_block = read_record(fh)
        if len(atom_block) != 4:
            raise CorruptTrajectoryError("Atom count record must hold a single integer.")
        (n_atoms,) = struct.unpack('<I', atom_block)

        return cls(n_atoms=n_atoms, n_frames=values[0], timestep=values[9],
                   has_box=bool(values[10]), titles=titles,
                   start=values[1], interval=values[2])


def frame_size(n_atoms: int, has_box: bool, box_width: int = 24) -> int:
    """Size in bytes of one framed frame on disk."""
    size = 3 * (n_atoms * 4 + 2 * _MARKER.size)
    if has_box:
        size += box_width + 2 * _MARKER.size
    return size


class DCDReader:
    """Random-access reader for trajectories written by DCDWriter."""

    def __init__(self, filename: Union[str, Path]):
        self.filepath = Path(filename)
        if not self.filepath.exists():
            raise FileNotFoundError(f"Trajectory file not found: {filename}")
        self._fh = open(self.filepath, 'rb')
        try:
            self.header = DCDHeader.from_stream(self._fh)
            self.header_size = self._fh.tell()
            file_size = self.filepath.stat().st_size
            self.box_width = self._detect_box_width(file_size)
            self.frame_size = frame_size(self.n_atoms, self.has_box, self.box_width)
            self.n_frames, self.trailing_bytes = divmod(file_size - self.header_size, self.frame_size)
        except Exception:
            self._fh.close()
            raise
        if self.trailing_bytes:
            logger.warning(f"{self.filepath.name}: ignoring {self.trailing_bytes} bytes of a partial trailing frame.")
        if self.header.n_frames != self.n_frames:
            logger.debug(f"{self.filepath.name}: header declares {self.header.n_frames} frames, file holds {self.n_frames}.")

    def _detect_box_width(self, file_size: int) -> int:
        if not self.has_box or file_size < self.header_size + _MARKER.size:
            return 24
        (width,) = _MARKER.unpack(self._fh.read(_MARKER.size))
        if width not in _BOX_DTYPES:
            raise CorruptTrajectoryError(f"Box record of {width} bytes is not a 6-value float or double record.")
        return width

    @property
    def n_atoms(self) -> int:
        return self.header.n_atoms

    @property
    def has_box(self) -> bool:
        return self.header.has_box

    @property
    def timestep(self) -> float:
        return self.header.timestep

    @property
    def titles(self) -> List[str]:
        return self.header.titles

    def __len__(self) -> int:
        return self.n_frames

    def read_frame(self, index: int) -> Frame:
        if index < 0:
            index += self.n_frames
        if not 0 <= index < self.n_frames:
            raise IndexError(f"Frame {index} out of range for {self.n_frames}-frame trajectory.")
        self._fh.seek(self.header_size + index * self.frame_size)
        buf = io.BytesIO(self._fh.read(self.frame_size))

        box = None
        if self.has_box:
            xtal = np.frombuffer(read_record(buf), dtype=_BOX_DTYPES[self.box_width])
            box = np.array([xtal[1], xtal[3], xtal[4]], dtype=np.float64)

        axes = []
        for _ in range(3):
            payload = read_record(buf)
            if len(payload) != self.n_atoms * 4:
                raise CorruptTrajectoryError(f"Coordinate record of frame {index} has {len(payload)} bytes.")
            axes.append(np.frombuffer(payload, dtype='<f4'))
        return Frame(np.stack(axes, axis=1), box)

    def __iter__(self) -> Iterator[Frame]:
        for i in range(self.n_frames):
            yield self.read_frame(i)

    def close(self) -> None:
        self._fh.close()

    def __enter__(self) -> 'DCDReader':
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def count_frames(filename: Union[str, Path]) -> int:
    """Number of whole frames in an existing trajectory, 0 if it does not exist."""
    path = Path(filename)
    if not path.exists() or path.stat().st_size == 0:
        return 0
    with DCDReader(path) as reader:
        return reader.n_frames


class DCDWriter:
    """
    Writer for merged DCD trajectories.

    A new file gets a fresh header. An existing file is opened for append: its
    header is left untouched, its atom count must match, and its periodicity
    flag and box record width are adopted.
    """

    def __init__(self, filename: Union[str, Path], n_atoms: int, n_frames: Optional[int] = None,
                 timestep: float = DEFAULT_TIMESTEP, has_box: bool = False,
                 titles: Optional[Sequence[str]] = None, append: bool = True):
        """
        Open a trajectory for writing.

        Args:
            filename: Output trajectory path
            n_atoms: Atom count of every frame
            n_frames: Maximum number of write_frame calls; None for unbounded
            timestep: Timestep stored in a new header
            has_box: Whether frames carry a periodic box record
            titles: Title lines for a new header (each stored as 80 bytes)
            append: Append to the file if it already exists instead of replacing it
        """
        if n_atoms <= 0:
            raise ValueError("n_atoms must be positive.")
        if n_frames is not None and n_frames < 0:
            raise ValueError("n_frames must be non-negative.")
        self.filepath = Path(filename)
        self.n_atoms = n_atoms
        self.capacity = n_frames
        self.has_box = has_box
        self._appended = 0
        self._existing = 0
        self._box_dtype = _BOX_DTYPES[24]

        if append and self.filepath.exists() and self.filepath.stat().st_size > 0:
            self._open_for_append()
            self._header = None
        else:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            self._header = DCDHeader(n_atoms=n_atoms, n_frames=n_frames or 0, timestep=timestep,
                                     has_box=has_box, titles=list(titles or []))
            self._fh = open(self.filepath, 'w+b')
            self._fh.write(self._header.to_bytes())
            logger.info(f"Created trajectory {self.filepath} ({n_atoms} atoms, box={has_box}).")

    def _open_for_append(self) -> None:
        with DCDReader(self.filepath) as reader:
            if reader.n_atoms != self.n_atoms:
                raise AtomCountMismatch(
                    f"{self.filepath.name} holds {reader.n_atoms} atoms, cannot append {self.n_atoms}-atom frames.")
            if reader.has_box != self.has_box:
                logger.warning(f"{self.filepath.name}: periodicity flag in existing header is {reader.has_box}; "
                               "using it for appended frames.")
            self.has_box = reader.has_box
            self._box_dtype = _BOX_DTYPES[reader.box_width]
            self._existing = reader.n_frames
            whole_size = reader.header_size + reader.n_frames * reader.frame_size
            trailing = reader.trailing_bytes

        if trailing:
            logger.warning(f"{self.filepath.name}: truncating {trailing} bytes of a partial trailing frame.")
            with open(self.filepath, 'r+b') as fh:
                fh.truncate(whole_size)
        self._fh = open(self.filepath, 'ab')
        logger.debug(f"Appending to {self.filepath} after {self._existing} frames.")

    @property
    def frames_written(self) -> int:
        return self._existing + self._appended

    def write_frame(self, coords: np.ndarray, box: Optional[np.ndarray] = None) -> None:
        if self.capacity is not None and self._appended >= self.capacity:
            raise FrameCountExceeded(f"Attempting to write more than {self.capacity} frames to {self.filepath.name}.")
        coords = np.asarray(coords)
        if coords.ndim != 2 or coords.shape[1] != 3:
            raise ValueError(f"Coordinates must have shape (atoms, 3), got {coords.shape}.")
        if coords.shape[0] != self.n_atoms:
            raise AtomCountMismatch(f"Frame has {coords.shape[0]} atoms, trajectory has {self.n_atoms}.")
        if box is not None and not self.has_box:
            raise UnexpectedPeriodicData(
                f"Frame has periodic info but {self.filepath.name} was opened without a periodic box.")
        if box is None and self.has_box:
            raise MissingPeriodicData(f"{self.filepath.name} requires a periodic box on every frame.")

        records = []
        if self.has_box:
            bx, by, bz = np.asarray(box, dtype=np.float64).reshape(3)
            xtal = np.array([1.0, bx, 1.0, by, bz, 1.0], dtype=self._box_dtype)
            records.append(pack_record(xtal.tobytes()))
        for axis in np.ascontiguousarray(coords.T, dtype='<f4'):
            records.append(pack_record(axis.tobytes()))
        # One write per frame: a frame is either appended whole or not at all.
        self._fh.write(b''.join(records))
        self._appended += 1

    def write(self, frame: Frame) -> None:
        self.write_frame(frame.coords, frame.box)

    def close(self) -> None:
        if self._fh.closed:
            return
        if self._header is not None and self._header.n_frames != self.frames_written:
            self._header.n_frames = self.frames_written
            self._fh.seek(0)
            self._fh.write(self._header.to_bytes())
        self._fh.flush()
        self._fh.close()

    def __enter__(self) -> 'DCDWriter':
        return self

    def __exit__(self, *exc) -> None:
        self.close()
