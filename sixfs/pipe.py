"""A bounded in-memory pipe between a writer and a reader."""

from __future__ import annotations

import threading

PIPESIZE = 512


class PipeClosed(BrokenPipeError):
    """Writing to a pipe whose read end is closed."""


class Pipe:
    """A pipe buffering at most PIPESIZE bytes."""

    def __init__(self):
        self._cond = threading.Condition()
        self._data = bytearray()
        self.readopen = True
        self.writeopen = True

    def write(self, data) -> int:
        """Write all of ``data``, waiting for room while the pipe is full."""
        data = bytes(data)
        with self._cond:
            pos = 0
            while pos < len(data):
                while len(self._data) == PIPESIZE:
                    if not self.readopen:
                        raise PipeClosed("read end of pipe is closed")
                    self._cond.notify_all()
                    self._cond.wait()
                chunk = data[pos:pos + PIPESIZE - len(self._data)]
                self._data += chunk
                pos += len(chunk)
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; empty once the pipe is drained and the writer gone."""
        with self._cond:
            while not self._data and self.writeopen:
                self._cond.wait()
            count = max(n, 0)
            out = bytes(self._data[:count])
            del self._data[:count]
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable`` is true, otherwise the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()