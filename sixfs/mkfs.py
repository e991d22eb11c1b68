"""Build a file-system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from collections.abc import Mapping
from pathlib import Path

from sixfs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    SUPERBLOCK_SIZE,
    Dirent,
    DiskInode,
    InodeType,
    SuperBlock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image: boot block, superblock, log, inodes, bitmap, data."""

    def __init__(self, size: int = FSSIZE, ninodes: int = NINODES, nlog: int = LOGSIZE):
        self.nbitmap = size // BPB + 1
        self.ninodeblocks = ninodes // IPB + 1
        self.nlog = nlog
        self.nmeta = 2 + nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = size - self.nmeta
        if self.nblocks <= 0:
            raise ValueError(f"an image of {size} blocks has no room for data")
        self.sb = SuperBlock(
            size=size,
            nblocks=self.nblocks,
            ninodes=ninodes,
            nlog=nlog,
            logstart=2,
            inodestart=2 + nlog,
            bmapstart=2 + nlog + self.ninodeblocks,
        )
        self.image = bytearray(size * BSIZE)
        self.image[BSIZE:BSIZE + SUPERBLOCK_SIZE] = self.sb.pack()
        self.freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False

        root = self.ialloc(InodeType.DIR)
        if root != ROOTINO:
            raise ValueError(f"root directory got inode {root}")
        self.iappend(root, Dirent(root, ".").pack())
        self.iappend(root, Dirent(root, "..").pack())

    def _block(self, blockno: int) -> slice:
        return slice(blockno * BSIZE, (blockno + 1) * BSIZE)

    def _inode_slice(self, inum: int) -> slice:
        start = iblock(inum, self.sb) * BSIZE + (inum % IPB) * DINODE_SIZE
        return slice(start, start + DINODE_SIZE)

    def _rinode(self, inum: int) -> DiskInode:
        return DiskInode.unpack(bytes(self.image[self._inode_slice(inum)]))

    def _winode(self, inum: int, din: DiskInode) -> None:
        self.image[self._inode_slice(inum)] = din.pack()

    def _alloc_block(self) -> int:
        if self.freeblock >= self.sb.size:
            raise ValueError("image out of blocks")
        blockno = self.freeblock
        self.freeblock += 1
        return blockno

    def ialloc(self, itype) -> int:
        """Allocate the next inode with one link; return its number."""
        inum = self.freeinode
        if inum >= self.sb.ninodes:
            raise ValueError("image out of inodes")
        self.freeinode += 1
        self._winode(inum, DiskInode(type=int(itype), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data) -> None:
        """Append ``data`` to the contents of inode ``inum``."""
        data = bytes(data)
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(data):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError(f"file of inode {inum} exceeds the maximum size")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._alloc_block()
                blockno = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._alloc_block()
                ind = self._block(din.addrs[NDIRECT])
                indirect = list(_INDIRECT.unpack(bytes(self.image[ind])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._alloc_block()
                    self.image[ind] = _INDIRECT.pack(*indirect)
                blockno = indirect[fbn - NDIRECT]
            n1 = min(len(data) - pos, (fbn + 1) * BSIZE - off)
            start = blockno * BSIZE + off - fbn * BSIZE
            self.image[start:start + n1] = data[pos:pos + n1]
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: str, data) -> int:
        """Add a file to the root directory; a leading underscore is dropped."""
        if self._finished:
            raise ValueError("image already finished")
        if "/" in name:
            raise ValueError(f"file name {name!r} may not contain '/'")
        if name.startswith("_"):
            name = name[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(ROOTINO, Dirent(inum, name).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round the root directory up to a block and write the free-block bitmap."""
        if self._finished:
            raise ValueError("image already finished")
        din = self._rinode(ROOTINO)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(ROOTINO, din)

        used = self.freeblock
        if used >= BPB:
            raise ValueError(f"{used} used blocks do not fit one bitmap block")
        bitmap = bytearray(BSIZE)
        full, rest = divmod(used, 8)
        bitmap[:full] = b"\xff" * full
        if rest:
            bitmap[full] = (1 << rest) - 1
        self.image[self._block(self.sb.bmapstart)] = bitmap
        self._finished = True
        return bytes(self.image)


def build_image(files) -> bytes:
    """Build an image from (name, data) pairs or a name-to-data mapping."""
    builder = ImageBuilder()
    items = files.items() if isinstance(files, Mapping) else files
    for name, data in items:
        builder.add_file(name, data)
    return builder.finish()


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *names = args

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {builder.sb.size}"
    )
    for name in names:
        if "/" in name:
            print(f"mkfs: {name}: file name may not contain '/'", file=sys.stderr)
            return 1
        try:
            data = Path(name).read_bytes()
        except OSError as exc:
            print(f"{name}: {exc.strerror}", file=sys.stderr)
            return 1
        builder.add_file(name, data)

    image = builder.finish()
    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0