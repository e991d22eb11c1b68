"""Open files: reference-counted handles on pipes and inodes."""

from __future__ import annotations

import enum
import errno
import io
import threading
from dataclasses import dataclass

from sixfs.fs import FileSystem, Inode
from sixfs.layout import BSIZE, LOGSIZE, NFILE, KernelPanic, Stat
from sixfs.pipe import Pipe

# Largest write in one transaction: leave room for the inode, an indirect
# block, bitmap blocks and two blocks of slop for unaligned writes.
_MAX_WRITE = ((LOGSIZE - 1 - 1 - 2) // 2) * BSIZE


class FileKind(enum.Enum):
    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class OpenFile:
    """An entry of the open-file table."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Pipe | None = None
    ip: Inode | None = None
    off: int = 0


class FileTable:
    """The system-wide table of open files."""

    def __init__(self, fs: FileSystem, nfile: int = NFILE):
        self.fs = fs
        self._lock = threading.Lock()
        self._files = [OpenFile() for _ in range(nfile)]

    def alloc(self) -> OpenFile:
        """Take a free table entry with one reference."""
        with self._lock:
            f = next((f for f in self._files if f.ref == 0), None)
            if f is None:
                raise OSError(errno.ENFILE, "file table full")
            f.ref = 1
            f.kind = FileKind.NONE
            f.readable = f.writable = False
            f.pipe = None
            f.ip = None
            f.off = 0
            return f

    def dup(self, f: OpenFile) -> OpenFile:
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("filedup")
            f.ref += 1
        return f

    def close(self, f: OpenFile) -> None:
        """Drop a reference, releasing the pipe end or inode with the last one."""
        with self._lock:
            if f.ref < 1:
                raise KernelPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None
        if kind is FileKind.PIPE:
            pipe.close(writable)
        elif kind is FileKind.INODE:
            with self.fs.log.transaction():
                self.fs.iput(ip)

    def stat(self, f: OpenFile) -> Stat:
        if f.kind is not FileKind.INODE:
            raise io.UnsupportedOperation("stat needs an inode")
        self.fs.ilock(f.ip)
        try:
            return self.fs.stati(f.ip)
        finally:
            self.fs.iunlock(f.ip)

    def read(self, f: OpenFile, n: int) -> bytes:
        if not f.readable:
            raise io.UnsupportedOperation("file not open for reading")
        if f.kind is FileKind.PIPE:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE:
            self.fs.ilock(f.ip)
            try:
                data = self.fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self.fs.iunlock(f.ip)
            return data
        raise KernelPanic("fileread")

    def write(self, f: OpenFile, data) -> int:
        if not f.writable:
            raise io.UnsupportedOperation("file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE:
            written = 0
            while written < len(data):
                chunk = data[written:written + _MAX_WRITE]
                with self.fs.log.transaction():
                    self.fs.ilock(f.ip)
                    try:
                        r = self.fs.writei(f.ip, chunk, f.off)
                        f.off += r
                    finally:
                        self.fs.iunlock(f.ip)
                if r != len(chunk):
                    raise KernelPanic("short filewrite")
                written += r
            return written
        raise KernelPanic("filewrite")

    def open_inode(self, ip: Inode, readable: bool, writable: bool) -> OpenFile:
        """Open an inode; the file takes over the caller's reference to it."""
        f = self.alloc()
        f.kind = FileKind.INODE
        f.ip = ip
        f.off = 0
        f.readable = bool(readable)
        f.writable = bool(writable)
        return f

    def pipe(self) -> tuple[OpenFile, OpenFile]:
        """Create a pipe; return its read end and its write end."""
        read_end = self.alloc()
        try:
            write_end = self.alloc()
        except OSError:
            self.close(read_end)
            raise
        p = Pipe()
        read_end.kind = write_end.kind = FileKind.PIPE
        read_end.pipe = write_end.pipe = p
        read_end.readable, read_end.writable = True, False
        write_end.readable, write_end.writable = False, True
        return read_end, write_end