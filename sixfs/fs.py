"""Inodes, directories and path names, built on the buffer cache and the log."""

from __future__ import annotations

import errno
import struct
import threading
from dataclasses import dataclass, field

from sixfs.bufcache import BufferCache, _SleepLock
from sixfs.journal import Log, read_superblock
from sixfs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTDEV,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    KernelPanic,
    Stat,
    bblock,
    iblock,
)

_ADDR = struct.Struct("<I")
_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


def _empty_addrs() -> list[int]:
    return [0] * (NDIRECT + 1)


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, with cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=_empty_addrs)
    lock: _SleepLock = field(default_factory=_SleepLock, repr=False)


def namecmp(s: str, t: str) -> int:
    """Compare two directory entry names over their first DIRSIZ bytes."""
    a = s.encode("utf-8", "surrogateescape")[:DIRSIZ]
    b = t.encode("utf-8", "surrogateescape")[:DIRSIZ]
    return (a > b) - (a < b)


def skipelem(path: str) -> tuple[str, str] | None:
    """Split off the first element of a path.

    Returns the element (cut to DIRSIZ characters) and the rest of the path
    without leading slashes, or None when the path holds no element.
    """
    path = path.lstrip("/")
    if not path:
        return None
    elem, _, rest = path.partition("/")
    return elem[:DIRSIZ], rest.lstrip("/")


class FileSystem:
    """Blocks, inodes, directories and path names on one device."""

    def __init__(self, cache: BufferCache, log: Log, dev: int = ROOTDEV):
        self.cache = cache
        self.log = log
        self.dev = dev
        self.sb = read_superblock(cache, dev)
        # Major device number -> object with read(ip, n) and write(ip, data).
        self.devsw: dict = {}
        self._lock = threading.Lock()
        self._icache = [Inode() for _ in range(NINODE)]

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self.cache.block(self.dev, blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self.log.log_write(bp)

    def _balloc(self) -> int:
        size = self.sb.size
        for base in range(0, size, BPB):
            with self.cache.block(self.dev, bblock(base, self.sb)) as bp:
                free = next(
                    (
                        bi
                        for bi in range(min(BPB, size - base))
                        if not bp.data[bi // 8] & (1 << (bi % 8))
                    ),
                    None,
                )
                if free is not None:
                    bp.data[free // 8] |= 1 << (free % 8)
                    self.log.log_write(bp)
            if free is not None:
                self._bzero(base + free)
                return base + free
        raise KernelPanic("balloc: out of blocks")

    def _bfree(self, b: int) -> None:
        with self.cache.block(self.dev, bblock(b, self.sb)) as bp:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise KernelPanic("freeing free block")
            bp.data[bi // 8] &= ~mask & 0xFF
            self.log.log_write(bp)

    # Inodes.

    def _slot(self, inum: int) -> tuple[int, int]:
        return iblock(inum, self.sb), (inum % IPB) * DINODE_SIZE

    def ialloc(self, itype) -> Inode:
        """Allocate a free on-disk inode of the given type; return it unlocked."""
        for inum in range(1, self.sb.ninodes):
            blockno, off = self._slot(inum)
            with self.cache.block(self.dev, blockno) as bp:
                dip = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
                found = dip.type == 0
                if found:
                    bp.data[off:off + DINODE_SIZE] = DiskInode(type=int(itype)).pack()
                    self.log.log_write(bp)
            if found:
                return self.iget(inum)
        raise KernelPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        blockno, off = self._slot(ip.inum)
        dip = DiskInode(
            int(ip.type), ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs)
        )
        with self.cache.block(ip.dev, blockno) as bp:
            bp.data[off:off + DINODE_SIZE] = dip.pack()
            self.log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode for ``inum``, neither locked nor read."""
        with self._lock:
            empty = None
            for ip in self._icache:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise KernelPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip``."""
        with self._lock:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock an inode, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise KernelPanic("ilock")
        ip.lock.acquire()
        if not ip.valid:
            blockno, off = self._slot(ip.inum)
            with self.cache.block(ip.dev, blockno) as bp:
                dip = DiskInode.unpack(bytes(bp.data[off:off + DINODE_SIZE]))
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                raise KernelPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock an inode locked by this thread."""
        if ip is None or not ip.lock.holding() or ip.ref < 1:
            raise KernelPanic("iunlock")
        ip.lock.release()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        with self._lock:
            free = ip.ref == 1 and ip.valid and ip.nlink == 0
        if free:
            self._itrunc(ip)
            ip.type = 0
            self.iupdate(ip)
            ip.valid = False
        with self._lock:
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        self.iunlock(ip)
        self.iput(ip)

    def _bmap(self, ip: Inode, bn: int) -> int:
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self._balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self._balloc()
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * _ADDR.size)
                if addr == 0:
                    addr = self._balloc()
                    _ADDR.pack_into(bp.data, bn * _ADDR.size, addr)
                    self.log.log_write(bp)
            return addr
        raise KernelPanic("bmap: out of range")

    def _itrunc(self, ip: Inode) -> None:
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self._bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self.cache.block(ip.dev, ip.addrs[NDIRECT]) as bp:
                indirect = _INDIRECT.unpack_from(bp.data, 0)
            for addr in indirect:
                if addr:
                    self._bfree(addr)
            self._bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of a locked inode."""
        return Stat(ip.type, ip.dev, ip.inum, ip.nlink, ip.size)

    def _device(self, ip: Inode, op: str):
        device = self.devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        if device is None or getattr(device, op, None) is None:
            raise OSError(errno.ENODEV, f"no device for major {ip.major}")
        return device

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes at ``off`` from a locked inode."""
        if ip.type == InodeType.DEV:
            return bytes(self._device(ip, "read").read(ip, n))
        if off > ip.size or n < 0:
            raise ValueError(f"read at {off} beyond end of file ({ip.size} bytes)")
        n = min(n, ip.size - off)
        out = bytearray()
        while len(out) < n:
            pos = off + len(out)
            start = pos % BSIZE
            m = min(n - len(out), BSIZE - start)
            with self.cache.block(ip.dev, self._bmap(ip, pos // BSIZE)) as bp:
                out += bp.data[start:start + m]
        return bytes(out)

    def writei(self, ip: Inode, data, off: int) -> int:
        """Write ``data`` at ``off`` into a locked inode; return the count written."""
        if ip.type == InodeType.DEV:
            return self._device(ip, "write").write(ip, data)
        data = bytes(data)
        n = len(data)
        if off > ip.size:
            raise ValueError(f"write at {off} beyond end of file ({ip.size} bytes)")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write exceeds the maximum file size")
        done = 0
        while done < n:
            pos = off + done
            start = pos % BSIZE
            m = min(n - done, BSIZE - start)
            with self.cache.block(ip.dev, self._bmap(ip, pos // BSIZE)) as bp:
                bp.data[start:start + m] = data[done:done + m]
                self.log.log_write(bp)
            done += m
        if n > 0 and off + n > ip.size:
            ip.size = off + n
            self.iupdate(ip)
        return n

    # Directories.

    def dirlookup(self, dp: Inode, name: str) -> tuple[Inode, int] | None:
        """Find ``name`` in a locked directory; return its inode and entry offset."""
        if dp.type != InodeType.DIR:
            raise KernelPanic("dirlookup not DIR")
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlink read")
            de = Dirent.unpack(raw)
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: str, inum: int) -> None:
        """Add the entry (name, inum) to a locked directory."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(errno.EEXIST, "directory entry exists", name)
        off = dp.size
        for pos in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, pos, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise KernelPanic("dirlink read")
            if Dirent.unpack(raw).inum == 0:
                off = pos
                break
        if self.writei(dp, Dirent(inum, name).pack(), off) != DIRENT_SIZE:
            raise KernelPanic("dirlink")

    # Path names.

    def _namex(self, path: str, parent: bool, cwd: Inode | None):
        if path.startswith("/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)
        name = ""
        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and path == "":
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            self.iunlockput(ip)
            if found is None:
                return None
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip, name

    def namei(self, path: str, cwd: Inode | None = None) -> Inode | None:
        """Look up a path; relative paths start at ``cwd`` (the root if None)."""
        found = self._namex(path, False, cwd)
        return None if found is None else found[0]

    def nameiparent(
        self, path: str, cwd: Inode | None = None
    ) -> tuple[Inode, str] | None:
        """Return the parent directory of a path and the path's final element."""
        return self._namex(path, True, cwd)