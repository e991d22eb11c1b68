"""A disk whose blocks are kept in memory."""

from __future__ import annotations

from pathlib import Path

from sixfs.layout import BSIZE, ROOTDEV, KernelPanic


class MemDisk:
    """A disk image held in memory, serving block reads and writes."""

    def __init__(self, image=b"", dev: int = ROOTDEV):
        self.image = bytearray(image)
        self.dev = dev
        self._size = len(self.image) // BSIZE

    @classmethod
    def load(cls, path, dev: int = ROOTDEV) -> "MemDisk":
        return cls(Path(path).read_bytes(), dev)

    def save(self, path) -> None:
        Path(path).write_bytes(bytes(self.image))

    def nblocks(self) -> int:
        return self._size

    def rw(self, buf) -> None:
        """Write a dirty buffer to disk, or fill an invalid one from it."""
        if not buf.lock.holding():
            raise KernelPanic("iderw: buf not locked")
        if buf.valid and not buf.dirty:
            raise KernelPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise KernelPanic(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self._size:
            raise KernelPanic("iderw: block out of range")

        start = buf.blockno * BSIZE
        if buf.dirty:
            buf.dirty = False
            self.image[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self.image[start:start + BSIZE]
        buf.valid = True