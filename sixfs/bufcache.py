"""Buffer cache of disk blocks, with most-recently-used ordering."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field

from sixfs.layout import BSIZE, NBUF, KernelPanic


class _SleepLock:
    """A lock held across blocking work, remembering which thread holds it."""

    def __init__(self):
        self._cond = threading.Condition()
        self._owner = None

    def acquire(self) -> None:
        with self._cond:
            while self._owner is not None:
                self._cond.wait()
            self._owner = threading.get_ident()

    def release(self) -> None:
        with self._cond:
            self._owner = None
            self._cond.notify_all()

    def holding(self) -> bool:
        with self._cond:
            return self._owner == threading.get_ident()


def _block_data() -> bytearray:
    return bytearray(BSIZE)


@dataclass(eq=False)
class Buf:
    """A cached copy of one disk block."""

    dev: int = 0
    blockno: int = 0
    data: bytearray = field(default_factory=_block_data)
    valid: bool = False
    dirty: bool = False
    refcnt: int = 0
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


class BufferCache:
    """A fixed pool of block buffers in front of a disk."""

    def __init__(self, disk, nbuf: int = NBUF):
        self.disk = disk
        self._lock = threading.Lock()
        # Most recently used first.
        self._mru: list[Buf] = [Buf() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._lock:
            buf = next(
                (b for b in self._mru if b.dev == dev and b.blockno == blockno), None
            )
            if buf is not None:
                buf.refcnt += 1
            else:
                # Dirty buffers are pinned until the log commits them.
                buf = next(
                    (b for b in reversed(self._mru) if b.refcnt == 0 and not b.dirty),
                    None,
                )
                if buf is None:
                    raise KernelPanic("bget: no buffers")
                buf.dev = dev
                buf.blockno = blockno
                buf.valid = False
                buf.dirty = False
                buf.refcnt = 1
        buf.lock.acquire()
        return buf

    def read(self, dev: int, blockno: int) -> Buf:
        """Return a locked buffer holding the contents of the block."""
        buf = self._get(dev, blockno)
        if not buf.valid:
            self.disk.rw(buf)
        return buf

    def write(self, buf: Buf) -> None:
        """Write a locked buffer's contents to disk."""
        if not buf.lock.holding():
            raise KernelPanic("bwrite")
        buf.dirty = True
        self.disk.rw(buf)

    def release(self, buf: Buf) -> None:
        """Release a locked buffer, making it the most recently used."""
        if not buf.lock.holding():
            raise KernelPanic("brelse")
        buf.lock.release()
        with self._lock:
            buf.refcnt -= 1
            if buf.refcnt == 0:
                self._mru.remove(buf)
                self._mru.insert(0, buf)

    @contextmanager
    def block(self, dev: int, blockno: int):
        """Hold the buffer of a block for the duration of a with-block."""
        buf = self.read(dev, blockno)
        try:
            yield buf
        finally:
            self.release(buf)