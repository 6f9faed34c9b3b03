"""Named, file-backed shared segments holding vital counters, stop flags and mutexes.

A segment is a fixed-size memory-mapped file with a small table of named
objects.  Several processes may open the same segment and see each other's
writes; each named mutex is an interprocess file lock.
"""

from __future__ import annotations

import mmap
import os
import re
import shutil
import struct
import tempfile
from enum import IntEnum
from pathlib import Path

from filelock import FileLock

SHM_NAME = "SharedMemoryForVitalMonitor"
SHM_SIZE = 65536
SHM_TH_COUNTER = 3
SHM_COUNTER_MAX = 10000

SEGMENT_DIR = Path(
    os.environ.get("NDTWATCH_SHM_DIR") or Path(tempfile.gettempdir()) / "ndtwatch"
)

_MAGIC = b"NDTW"
_HEADER = struct.Struct("<4sII")  # magic, entry count, next free offset
_ENTRY = struct.Struct("<48sB3xII4x")  # name, kind, offset, size
_MAX_ENTRIES = 64
_TABLE_START = _HEADER.size
_DATA_START = (_TABLE_START + _MAX_ENTRIES * _ENTRY.size + 15) & ~15
_COUNTER = struct.Struct("<IB3xII")  # modstatus, activated, thresh, value
_FLAG = struct.Struct("<?")
_NAME_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.-]*\Z")
_MAX_NAME_BYTES = 47
_U32_MAX = 0xFFFFFFFF


class SegmentError(Exception):
    """A shared segment or one of its named objects cannot be created or found."""


class ModuleStatus(IntEnum):
    NORMAL = 0
    ERROR_DETECTED = 1


class _Kind(IntEnum):
    COUNTER = 1
    FLAG = 2
    MUTEX = 3


def _check_name(name: str, what: str) -> bytes:
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise SegmentError(f"invalid {what} name: {name!r}")
    encoded = name.encode("utf-8")
    if len(encoded) > _MAX_NAME_BYTES:
        raise SegmentError(f"{what} name too long: {name!r}")
    return encoded


def _check_u32(value: int) -> int:
    value = int(value)
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"value out of unsigned 32-bit range: {value}")
    return value


class VitalCounter:
    """A view of a vital counter stored in a shared segment."""

    __slots__ = ("_segment", "_offset")

    def __init__(self, segment: SharedSegment, offset: int) -> None:
        self._segment = segment
        self._offset = offset

    def _load(self) -> tuple[int, int, int, int]:
        return _COUNTER.unpack_from(self._segment._buffer, self._offset)

    def _store(self, index: int, item: int) -> None:
        fields = list(self._load())
        fields[index] = item
        _COUNTER.pack_into(self._segment._buffer, self._offset, *fields)

    @property
    def modstatus(self) -> ModuleStatus:
        return ModuleStatus(self._load()[0])

    @modstatus.setter
    def modstatus(self, status: ModuleStatus) -> None:
        self._store(0, int(ModuleStatus(status)))

    @property
    def activated(self) -> bool:
        return bool(self._load()[1])

    @activated.setter
    def activated(self, flag: bool) -> None:
        self._store(1, 1 if flag else 0)

    @property
    def thresh(self) -> int:
        return self._load()[2]

    @thresh.setter
    def thresh(self, limit: int) -> None:
        self._store(2, _check_u32(limit))

    @property
    def value(self) -> int:
        return self._load()[3]

    @value.setter
    def value(self, count: int) -> None:
        self._store(3, _check_u32(count))

    def __repr__(self) -> str:
        status, activated, thresh, value = self._load()
        return (
            f"VitalCounter(modstatus={ModuleStatus(status).name}, "
            f"activated={bool(activated)}, thresh={thresh}, value={value})"
        )


class StopFlag:
    """A view of a boolean flag stored in a shared segment."""

    __slots__ = ("_segment", "_offset")

    def __init__(self, segment: SharedSegment, offset: int) -> None:
        self._segment = segment
        self._offset = offset

    @property
    def value(self) -> bool:
        return _FLAG.unpack_from(self._segment._buffer, self._offset)[0]

    @value.setter
    def value(self, flag: bool) -> None:
        _FLAG.pack_into(self._segment._buffer, self._offset, bool(flag))

    def __bool__(self) -> bool:
        return self.value

    def __repr__(self) -> str:
        return f"StopFlag(value={self.value})"


class InterprocessMutex:
    """A named mutex shared between processes, usable as a context manager."""

    def __init__(self, lock_path: Path) -> None:
        self._lock = FileLock(str(lock_path))

    def acquire(self) -> None:
        self._lock.acquire()

    def release(self) -> None:
        self._lock.release()

    @property
    def locked(self) -> bool:
        return self._lock.is_locked

    def __enter__(self) -> InterprocessMutex:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


class SharedSegment:
    """A named shared segment; create it once, open it from anywhere."""

    def __init__(self, name: str, directory: Path, buffer: mmap.mmap) -> None:
        self.name = name
        self._directory = directory
        self._mmap = buffer

    @staticmethod
    def _directory_for(name: str) -> Path:
        _check_name(name, "segment")
        return SEGMENT_DIR / name

    @classmethod
    def create(cls, name: str, size: int) -> SharedSegment:
        """Create a new segment; fail if one of that name already exists."""
        directory = cls._directory_for(name)
        if size < _DATA_START:
            raise SegmentError(f"segment size {size} is below the minimum {_DATA_START}")
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "segment"
        try:
            handle = open(path, "x+b")
        except FileExistsError as exc:
            raise SegmentError(f"segment {name!r} already exists") from exc
        with handle:
            try:
                handle.truncate(size)
                buffer = mmap.mmap(handle.fileno(), size)
            except (OSError, ValueError) as exc:
                handle.close()
                path.unlink(missing_ok=True)
                raise SegmentError(f"cannot create segment {name!r}: {exc}") from exc
        _HEADER.pack_into(buffer, 0, _MAGIC, 0, _DATA_START)
        return cls(name, directory, buffer)

    @classmethod
    def open(cls, name: str) -> SharedSegment:
        """Open an existing segment."""
        directory = cls._directory_for(name)
        path = directory / "segment"
        try:
            handle = open(path, "r+b")
        except OSError as exc:
            raise SegmentError(f"cannot open segment {name!r}: {exc}") from exc
        with handle:
            try:
                size = os.fstat(handle.fileno()).st_size
                if size < _DATA_START:
                    raise SegmentError(f"segment {name!r} is not initialised")
                buffer = mmap.mmap(handle.fileno(), size)
            except (OSError, ValueError) as exc:
                raise SegmentError(f"cannot open segment {name!r}: {exc}") from exc
        if _HEADER.unpack_from(buffer, 0)[0] != _MAGIC:
            buffer.close()
            raise SegmentError(f"segment {name!r} is not initialised")
        return cls(name, directory, buffer)

    @staticmethod
    def remove(name: str) -> bool:
        """Remove a segment and its lock files; return whether anything was removed."""
        directory = SharedSegment._directory_for(name)
        if not directory.exists():
            return False
        try:
            shutil.rmtree(directory)
        except OSError:
            return False
        return True

    @property
    def _buffer(self) -> mmap.mmap:
        if self._mmap.closed:
            raise SegmentError(f"segment {self.name!r} is closed")
        return self._mmap

    def _entries(self):
        count = _HEADER.unpack_from(self._buffer, 0)[1]
        table = self._buffer[_TABLE_START : _TABLE_START + count * _ENTRY.size]
        for raw_name, kind, offset, size in _ENTRY.iter_unpack(table):
            yield raw_name.rstrip(b"\0"), _Kind(kind), offset, size

    def _find(self, name: str, kind: _Kind) -> int:
        encoded = _check_name(name, "object")
        for entry_name, entry_kind, offset, _size in self._entries():
            if entry_name == encoded:
                if entry_kind is not kind:
                    raise SegmentError(
                        f"object {name!r} is a {entry_kind.name.lower()}, not a {kind.name.lower()}"
                    )
                return offset
        raise SegmentError(f"object {name!r} not found in segment {self.name!r}")

    def _construct(self, name: str, kind: _Kind, size: int) -> int:
        encoded = _check_name(name, "object")
        with FileLock(str(self._directory / "segment.lock")):
            buffer = self._buffer
            if any(entry[0] == encoded for entry in self._entries()):
                raise SegmentError(f"object {name!r} already exists in segment {self.name!r}")
            _magic, count, next_free = _HEADER.unpack_from(buffer, 0)
            if count >= _MAX_ENTRIES:
                raise SegmentError(f"segment {self.name!r} holds no more objects")
            offset = (next_free + 7) & ~7
            if offset + size > len(buffer):
                raise SegmentError(f"segment {self.name!r} is out of space")
            buffer[offset : offset + size] = bytes(size)
            _ENTRY.pack_into(buffer, _TABLE_START + count * _ENTRY.size, encoded, kind, offset, size)
            _HEADER.pack_into(buffer, 0, _MAGIC, count + 1, offset + size)
        return offset

    def _mutex_for(self, name: str) -> InterprocessMutex:
        return InterprocessMutex(self._directory / f"mutex-{name}.lock")

    def construct_counter(self, name: str) -> VitalCounter:
        return VitalCounter(self, self._construct(name, _Kind.COUNTER, _COUNTER.size))

    def construct_flag(self, name: str) -> StopFlag:
        return StopFlag(self, self._construct(name, _Kind.FLAG, _FLAG.size))

    def construct_mutex(self, name: str) -> InterprocessMutex:
        self._construct(name, _Kind.MUTEX, 0)
        return self._mutex_for(name)

    def find_counter(self, name: str) -> VitalCounter:
        return VitalCounter(self, self._find(name, _Kind.COUNTER))

    def find_flag(self, name: str) -> StopFlag:
        return StopFlag(self, self._find(name, _Kind.FLAG))

    def find_mutex(self, name: str) -> InterprocessMutex:
        self._find(name, _Kind.MUTEX)
        return self._mutex_for(name)

    def close(self) -> None:
        """Unmap the segment; the segment itself stays until removed."""
        if not self._mmap.closed:
            self._mmap.close()

    def __enter__(self) -> SharedSegment:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()