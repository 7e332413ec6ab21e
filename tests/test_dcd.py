import struct
import pytest
import numpy as np

from mergetraj.io.dcd import (
    DCDWriter, DCDReader, DCDHeader, count_frames, fix_string_size, pack_record, frame_size,
)
from mergetraj.core.exceptions import (
    FrameCountExceeded, AtomCountMismatch, UnexpectedPeriodicData, MissingPeriodicData, CorruptTrajectoryError,
)


@pytest.fixture
def frames():
    rng = np.random.default_rng(7)
    return rng.uniform(-20, 20, size=(4, 5, 3)).astype(np.float32)


def test_fix_string_size_pads_and_truncates():
    assert fix_string_size("abc") == b"abc" + b" " * 77
    assert fix_string_size("x" * 100) == b"x" * 80
    assert len(fix_string_size("")) == 80


def test_pack_record_framing():
    rec = pack_record(b"abcd")
    assert rec == struct.pack('<I', 4) + b"abcd" + struct.pack('<I', 4)


def test_header_layout(tmp_path):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5, n_frames=3, timestep=0.002, has_box=True, titles=["hello"]):
        pass
    raw = path.read_bytes()
    assert struct.unpack('<I', raw[:4])[0] == 80
    slots = struct.unpack('<9if10i', raw[4:84])
    assert struct.unpack('<I', raw[84:88])[0] == 80
    assert slots[1] == 1 and slots[2] == 1
    assert slots[7] == 5 * 3 - 6
    assert slots[9] == pytest.approx(0.002)
    assert slots[10] == 1
    assert slots[19] == 27

    # Title record: count followed by one 80-byte title.
    title_len = struct.unpack('<I', raw[88:92])[0]
    assert title_len == 4 + 80
    assert struct.unpack('<I', raw[92:96])[0] == 1
    assert raw[96:176] == fix_string_size("hello")

    # Atom count record.
    assert raw[180:192] == pack_record(struct.pack('<I', 5))
    assert len(raw) == 192


def test_write_read_roundtrip_without_box(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5, titles=["t1", "t2"]) as writer:
        for f in frames:
            writer.write_frame(f)
        assert writer.frames_written == 4

    with DCDReader(path) as reader:
        assert reader.n_atoms == 5
        assert len(reader) == 4
        assert not reader.has_box
        assert reader.titles == ["t1", "t2"]
        for i, frame in enumerate(reader):
            assert frame.box is None
            np.testing.assert_array_equal(frame.coords.astype(np.float32), frames[i])


def test_coordinate_records_are_axis_major(tmp_path):
    path = tmp_path / "out.dcd"
    coords = np.array([[1, 2, 3], [4, 5, 6]], dtype=np.float32)
    with DCDWriter(path, n_atoms=2, titles=[]) as writer:
        writer.write_frame(coords)
    with DCDReader(path) as reader:
        header_size = reader.header_size
    raw = path.read_bytes()[header_size:]
    expected = b''.join(pack_record(np.array(axis, dtype='<f4').tobytes())
                        for axis in ([1, 4], [2, 5], [3, 6]))
    assert raw == expected


def test_box_record_layout(tmp_path, frames):
    path = tmp_path / "box.dcd"
    with DCDWriter(path, n_atoms=5, has_box=True) as writer:
        writer.write_frame(frames[0], box=[10.0, 20.0, 30.0])
    with DCDReader(path) as reader:
        offset = reader.header_size
        assert reader.box_width == 24
        frame = reader.read_frame(0)
    raw = path.read_bytes()
    assert struct.unpack('<I', raw[offset:offset + 4])[0] == 24
    xtal = np.frombuffer(raw[offset + 4:offset + 28], dtype='<f4')
    np.testing.assert_array_equal(xtal, [1.0, 10.0, 1.0, 20.0, 30.0, 1.0])
    np.testing.assert_array_equal(frame.box, [10.0, 20.0, 30.0])


def test_file_size_matches_frame_layout(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5, has_box=True) as writer:
        for f in frames:
            writer.write_frame(f, box=[10, 10, 10])
    with DCDReader(path) as reader:
        assert path.stat().st_size == reader.header_size + 4 * frame_size(5, True)


def test_capacity_exceeded(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5, n_frames=2) as writer:
        writer.write_frame(frames[0])
        writer.write_frame(frames[1])
        with pytest.raises(FrameCountExceeded):
            writer.write_frame(frames[2])
        assert writer.frames_written == 2
    assert count_frames(path) == 2


def test_atom_count_mismatch_writes_nothing(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5) as writer:
        writer.write_frame(frames[0])
        with pytest.raises(AtomCountMismatch):
            writer.write_frame(frames[1][:4])
        assert writer.frames_written == 1
    assert count_frames(path) == 1


def test_unexpected_periodic_data(tmp_path, frames):
    with DCDWriter(tmp_path / "out.dcd", n_atoms=5, has_box=False) as writer:
        with pytest.raises(UnexpectedPeriodicData):
            writer.write_frame(frames[0], box=[10, 10, 10])


def test_missing_periodic_data(tmp_path, frames):
    with DCDWriter(tmp_path / "out.dcd", n_atoms=5, has_box=True) as writer:
        with pytest.raises(MissingPeriodicData):
            writer.write_frame(frames[0])


def test_fresh_header_count_revised_on_close(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5) as writer:
        for f in frames[:3]:
            writer.write_frame(f)
    with DCDReader(path) as reader:
        assert reader.header.n_frames == 3


def test_append_keeps_header_and_counts_existing(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5, titles=["first"]) as writer:
        writer.write_frame(frames[0])
        writer.write_frame(frames[1])
    header_before = path.read_bytes()[:192]

    with DCDWriter(path, n_atoms=5, titles=["ignored"], append=True) as writer:
        assert writer.frames_written == 2
        writer.write_frame(frames[2])
        writer.write_frame(frames[3])
        assert writer.frames_written == 4

    assert path.read_bytes()[:192] == header_before
    with DCDReader(path) as reader:
        assert reader.header.n_frames == 2 # Stale declared count
        assert reader.n_frames == 4
        assert reader.titles == ["first"]
        np.testing.assert_array_equal(reader.read_frame(3).coords.astype(np.float32), frames[3])


def test_append_adopts_existing_periodicity(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5, has_box=True) as writer:
        writer.write_frame(frames[0], box=[9, 9, 9])
    with DCDWriter(path, n_atoms=5, has_box=False) as writer:
        assert writer.has_box
        with pytest.raises(MissingPeriodicData):
            writer.write_frame(frames[1])


def test_append_atom_count_mismatch(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5) as writer:
        writer.write_frame(frames[0])
    with pytest.raises(AtomCountMismatch):
        DCDWriter(path, n_atoms=6)


def test_no_append_replaces_file(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5) as writer:
        writer.write_frame(frames[0])
    with DCDWriter(path, n_atoms=5, append=False) as writer:
        assert writer.frames_written == 0
    assert count_frames(path) == 0


def test_append_truncates_partial_trailing_frame(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5) as writer:
        writer.write_frame(frames[0])
        writer.write_frame(frames[1])
    with open(path, 'ab') as fh:
        fh.write(b'\x00' * 17)

    with DCDReader(path) as reader:
        assert reader.n_frames == 2
        assert reader.trailing_bytes == 17

    with DCDWriter(path, n_atoms=5) as writer:
        writer.write_frame(frames[2])
    with DCDReader(path) as reader:
        assert reader.trailing_bytes == 0
        assert reader.n_frames == 3
        np.testing.assert_array_equal(reader.read_frame(2).coords.astype(np.float32), frames[2])


def test_reads_and_appends_double_precision_box(tmp_path, frames):
    path = tmp_path / "legacy.dcd"
    header = DCDHeader(n_atoms=5, n_frames=1, has_box=True, titles=["legacy"])
    xtal = np.array([1.0, 11.0, 1.0, 12.0, 13.0, 1.0], dtype='<f8')
    body = pack_record(xtal.tobytes())
    for axis in np.ascontiguousarray(frames[0].T, dtype='<f4'):
        body += pack_record(axis.tobytes())
    path.write_bytes(header.to_bytes() + body)

    with DCDWriter(path, n_atoms=5, has_box=True) as writer:
        assert writer.frames_written == 1
        writer.write_frame(frames[1], box=[14.0, 15.0, 16.0])

    with DCDReader(path) as reader:
        assert reader.box_width == 48
        assert reader.n_frames == 2
        np.testing.assert_array_equal(reader.read_frame(0).box, [11.0, 12.0, 13.0])
        np.testing.assert_array_equal(reader.read_frame(1).box, [14.0, 15.0, 16.0])


def test_corrupt_header_rejected(tmp_path):
    path = tmp_path / "bad.dcd"
    path.write_bytes(struct.pack('<I', 84) + b'CORD' + b'\x00' * 80 + struct.pack('<I', 84))
    with pytest.raises(CorruptTrajectoryError):
        DCDReader(path)


def test_count_frames_missing_file(tmp_path):
    assert count_frames(tmp_path / "missing.dcd") == 0
    (tmp_path / "empty.dcd").touch()
    assert count_frames(tmp_path / "empty.dcd") == 0


def test_read_frame_out_of_range(tmp_path, frames):
    path = tmp_path / "out.dcd"
    with DCDWriter(path, n_atoms=5) as writer:
        writer.write_frame(frames[0])
    with DCDReader(path) as reader:
        with pytest.raises(IndexError):
            reader.read_frame(1)
        np.testing.assert_array_equal(reader.read_frame(-1).coords.astype(np.float32), frames[0])
