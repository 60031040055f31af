import errno
import io
import stat
import struct
from types import SimpleNamespace

import pytest
from PIL import Image

# TIFF field types
ASCII, SHORT, LONG, RATIONAL = 2, 3, 4, 5

EXIF_POINTER = 0x8769
GPS_POINTER = 0x8825


def _value_bytes(typ, value):
    if typ == ASCII:
        raw = value.encode("ascii") + b"\x00"
        return len(raw), raw
    if typ == RATIONAL:
        pairs = value if isinstance(value, list) else [value]
        return len(pairs), b"".join(struct.pack(">LL", n, d) for n, d in pairs)
    values = value if isinstance(value, list) else [value]
    fmt = ">H" if typ == SHORT else ">L"
    return len(values), b"".join(struct.pack(fmt, v) for v in values)


def _ifd_size(entries):
    size = 2 + 12 * len(entries) + 4
    for _tag, typ, value in entries:
        _, raw = _value_bytes(typ, value)
        if len(raw) > 4:
            size += len(raw) + (len(raw) % 2)
    return size


def _pack_ifd(entries, start):
    entries = sorted(entries, key=lambda e: e[0])
    data_off = start + 2 + 12 * len(entries) + 4
    head = struct.pack(">H", len(entries))
    data = b""
    for tag, typ, value in entries:
        count, raw = _value_bytes(typ, value)
        if len(raw) <= 4:
            field = raw.ljust(4, b"\x00")
        else:
            field = struct.pack(">L", data_off + len(data))
            data += raw
            if len(data) % 2:
                data += b"\x00"
        head += struct.pack(">HHL", tag, typ, count) + field
    return head + struct.pack(">L", 0) + data


def build_exif(ifd0=(), exif=(), gps=()):
    """Packs a big-endian TIFF/EXIF block with optional Exif and GPS sub-IFDs."""
    ifd0 = list(ifd0)
    subs = [(EXIF_POINTER, list(exif)), (GPS_POINTER, list(gps))]
    subs = [(tag, entries) for tag, entries in subs if entries]

    # Pointer values fit inline, so IFD0's size does not depend on them
    ifd0_with_ptrs = ifd0 + [(tag, LONG, 0) for tag, _ in subs]
    offset = 8 + _ifd_size(ifd0_with_ptrs)
    pointers = []
    blobs = []
    for tag, entries in subs:
        pointers.append((tag, LONG, offset))
        blobs.append(_pack_ifd(entries, offset))
        offset += len(blobs[-1])

    tiff = b"MM" + struct.pack(">HL", 42, 8) + _pack_ifd(ifd0 + pointers, 8)
    for blob in blobs:
        tiff += blob
    return b"Exif\x00\x00" + tiff


def make_jpeg(path, size=(64, 48), exif_block=None):
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, "JPEG")
    data = buf.getvalue()
    if exif_block is not None:
        app1 = b"\xff\xe1" + struct.pack(">H", len(exif_block) + 2) + exif_block
        # APP1 goes straight after SOI, where EXIF readers look for it
        data = data[:2] + app1 + data[2:]
    path.write_bytes(data)
    return path


@pytest.fixture
def camera_jpeg(tmp_path):
    """A JPEG shot at ISO 200, f/2.8, 1/125s, 35mm, flash fired, in Lisbon."""
    exif_block = build_exif(
        ifd0=[
            (0x010F, ASCII, "Canon"),
            (0x0110, ASCII, "Canon EOS R5"),
            (0x0112, SHORT, 1),
        ],
        exif=[
            (0x829A, RATIONAL, (1, 125)),
            (0x829D, RATIONAL, (28, 10)),
            (0x8822, SHORT, 3),
            (0x8827, SHORT, 200),
            (0x9003, ASCII, "2023:05:06 07:08:09"),
            (0x9209, SHORT, 1),
            (0x920A, RATIONAL, (35, 1)),
            (0xA403, SHORT, 0),
            (0xA434, ASCII, "RF24-105mm F4 L IS USM"),
        ],
        gps=[
            (0x0001, ASCII, "N"),
            (0x0002, RATIONAL, [(38, 1), (43, 1), (30, 1)]),
            (0x0003, ASCII, "W"),
            (0x0004, RATIONAL, [(9, 1), (9, 1), (0, 1)]),
        ],
    )
    return make_jpeg(tmp_path / "a.jpg", size=(64, 48), exif_block=exif_block)


@pytest.fixture
def zero_denominator_jpeg(tmp_path):
    exif_block = build_exif(
        ifd0=[(0x0110, ASCII, "Broken Cam")],
        exif=[
            (0x829A, RATIONAL, (1, 0)),
            (0x829D, RATIONAL, (0, 0)),
            (0x920A, RATIONAL, (35, 0)),
        ],
    )
    return make_jpeg(tmp_path / "zero.jpg", exif_block=exif_block)


# --- SFTP / SSH fakes ---

class FakeRemoteFile(io.BytesIO):
    def __init__(self, sftp, path):
        super().__init__()
        self.sftp = sftp
        self.path = path
        self.pipelined = False
        self.fail_after = sftp.fail_write_after
        self.fail_close = sftp.fail_close

    def set_pipelined(self, pipelined=True):
        self.pipelined = pipelined

    def write(self, data):
        if self.fail_after is not None and self.tell() + len(data) > self.fail_after:
            raise OSError("Socket is closed")
        return super().write(data)

    def close(self):
        if self.closed:
            return
        self.sftp.files[self.path] = self.getvalue()
        self.sftp.closed_files.append(self.path)
        super().close()
        if self.fail_close is not None:
            raise self.fail_close


class FakeSFTP:
    """In-memory stand-in for paramiko.SFTPClient."""

    def __init__(self, dirs=("/",), files=None):
        self.dirs = set(dirs)
        self.files = dict(files or {})
        self.closed = False
        self.closed_files = []
        self.open_modes = []
        self.mkdirs = []
        self.fail_write_after = None
        self.fail_close = None

    def stat(self, path):
        if path in self.dirs:
            return SimpleNamespace(st_mode=stat.S_IFDIR | 0o755)
        if path in self.files:
            return SimpleNamespace(st_mode=stat.S_IFREG | 0o644)
        raise FileNotFoundError(errno.ENOENT, "No such file", path)

    def mkdir(self, path, mode=0o777):
        self.mkdirs.append(path)
        self.dirs.add(path)

    def open(self, path, mode="r"):
        self.open_modes.append(mode)
        if "x" in mode and (path in self.files or path in self.dirs):
            raise OSError("Failure")
        return FakeRemoteFile(self, path)

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeSSHClient:
    """Stand-in for paramiko.SSHClient; records how it was driven."""

    def __init__(self, sftp, connect_error=None):
        self.sftp = sftp
        self.connect_error = connect_error
        self.policy = None
        self.host_keys_file = "unset"
        self.connect_kwargs = None
        self.closed = False

    def set_missing_host_key_policy(self, policy):
        self.policy = policy

    def load_system_host_keys(self, filename=None):
        self.host_keys_file = filename

    def connect(self, **kwargs):
        self.connect_kwargs = kwargs
        if self.connect_error is not None:
            raise self.connect_error

    def open_sftp(self):
        return self.sftp

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@pytest.fixture
def fake_nas(monkeypatch):
    """Patches paramiko.SSHClient inside the NAS backend; returns the fake state."""
    import memorix.storage.nas as nas_module

    state = SimpleNamespace(sftp=FakeSFTP(), clients=[], connect_error=None)

    def factory():
        client = FakeSSHClient(state.sftp, state.connect_error)
        state.clients.append(client)
        return client

    monkeypatch.setattr(nas_module.paramiko, "SSHClient", factory)
    return state
