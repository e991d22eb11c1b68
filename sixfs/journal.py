"""Write-ahead redo log grouping file-system updates into atomic transactions."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager

from sixfs.bufcache import Buf, BufferCache
from sixfs.layout import BSIZE, LOGSIZE, MAXOPBLOCKS, ROOTDEV, KernelPanic, SuperBlock

_COUNT = struct.Struct("<i")


def read_superblock(cache: BufferCache, dev: int) -> SuperBlock:
    """Read the superblock of device ``dev``."""
    with cache.block(dev, 1) as buf:
        return SuperBlock.unpack(bytes(buf.data))


class Log:
    """The on-disk log: a header block followed by copies of logged blocks."""

    def __init__(self, cache: BufferCache, dev: int = ROOTDEV):
        if _COUNT.size + 4 * LOGSIZE >= BSIZE:
            raise KernelPanic("initlog: too big logheader")
        self._cache = cache
        self._cond = threading.Condition()
        sb = read_superblock(cache, dev)
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.pending: list[int] = []
        self.recover()

    def _read_head(self) -> None:
        with self._cache.block(self.dev, self.start) as buf:
            (n,) = _COUNT.unpack_from(buf.data, 0)
            self.pending = list(struct.unpack_from(f"<{n}i", buf.data, _COUNT.size))

    def _write_head(self) -> None:
        with self._cache.block(self.dev, self.start) as buf:
            n = len(self.pending)
            struct.pack_into(f"<i{n}i", buf.data, 0, n, *self.pending)
            self._cache.write(buf)

    def _install_trans(self) -> None:
        for tail, blockno in enumerate(self.pending):
            with self._cache.block(self.dev, self.start + tail + 1) as lbuf:
                with self._cache.block(self.dev, blockno) as dbuf:
                    dbuf.data[:] = lbuf.data
                    self._cache.write(dbuf)

    def _write_log(self) -> None:
        for tail, blockno in enumerate(self.pending):
            with self._cache.block(self.dev, self.start + tail + 1) as to:
                with self._cache.block(self.dev, blockno) as src:
                    to.data[:] = src.data
                self._cache.write(to)

    def _commit(self) -> None:
        if self.pending:
            self._write_log()
            self._write_head()  # the real commit point
            self._install_trans()
            self.pending = []
            self._write_head()

    def recover(self) -> None:
        """Install any committed transaction found in the log, then clear it."""
        self._read_head()
        self._install_trans()
        self.pending = []
        self._write_head()

    def begin_op(self) -> None:
        """Start a file-system operation, waiting while the log is busy or full."""
        with self._cond:
            while self.committing or (
                len(self.pending) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation; the last one outstanding commits the log."""
        do_commit = False
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise KernelPanic("log.committing")
            if self.outstanding == 0:
                do_commit = True
                self.committing = True
            else:
                self._cond.notify_all()

        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer in the transaction and pin it in the cache."""
        with self._cond:
            if len(self.pending) >= LOGSIZE or len(self.pending) >= self.size - 1:
                raise KernelPanic("too big a transaction")
            if self.outstanding < 1:
                raise KernelPanic("log_write outside of trans")
            if buf.blockno not in self.pending:
                self.pending.append(buf.blockno)
            buf.dirty = True

    @contextmanager
    def transaction(self):
        """Run a with-block as one file-system operation."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()