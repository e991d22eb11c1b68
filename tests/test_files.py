import errno
import io

import pytest

from sixfs.bufcache import BufferCache
from sixfs.disk import MemDisk
from sixfs.files import FileKind, FileTable
from sixfs.fs import FileSystem
from sixfs.journal import Log
from sixfs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    NDIRECT,
    ROOTDEV,
    ROOTINO,
    Dirent,
    DiskInode,
    InodeType,
    KernelPanic,
    SuperBlock,
    iblock,
)


def _make_image(ninodes=200):
    nlog = LOGSIZE
    ninodeblocks = ninodes // IPB + 1
    nbitmap = FSSIZE // BPB + 1
    nmeta = 2 + nlog + ninodeblocks + nbitmap
    sb = SuperBlock(
        size=FSSIZE,
        nblocks=FSSIZE - nmeta,
        ninodes=ninodes,
        nlog=nlog,
        logstart=2,
        inodestart=2 + nlog,
        bmapstart=2 + nlog + ninodeblocks,
    )
    image = bytearray(FSSIZE * BSIZE)
    packed = sb.pack()
    image[BSIZE:BSIZE + len(packed)] = packed
    rootblock = nmeta
    entries = Dirent(ROOTINO, ".").pack() + Dirent(ROOTINO, "..").pack()
    image[rootblock * BSIZE:rootblock * BSIZE + len(entries)] = entries
    addrs = [0] * (NDIRECT + 1)
    addrs[0] = rootblock
    root = DiskInode(type=InodeType.DIR, nlink=1, size=len(entries), addrs=addrs)
    slot = iblock(ROOTINO, sb) * BSIZE + (ROOTINO % IPB) * DINODE_SIZE
    image[slot:slot + DINODE_SIZE] = root.pack()
    bmap = sb.bmapstart * BSIZE
    for b in range(nmeta + 1):
        image[bmap + b // 8] |= 1 << (b % 8)
    return image


def _mount(disk):
    cache = BufferCache(disk)
    return FileSystem(cache, Log(cache, ROOTDEV), ROOTDEV)


@pytest.fixture
def disk():
    return MemDisk(_make_image(), ROOTDEV)


@pytest.fixture
def fs(disk):
    return _mount(disk)


@pytest.fixture
def table(fs):
    return FileTable(fs)


def _create(fs, name):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        root = fs.namei("/")
        fs.ilock(root)
        fs.dirlink(root, name, ip.inum)
        fs.iunlockput(root)
        fs.iunlockput(ip)


def test_pipe_round_trip(table):
    r, w = table.pipe()
    payload = b"hello"
    assert table.write(w, payload) == len(payload)
    assert table.read(r, 100) == payload
    assert r.kind is FileKind.PIPE and w.pipe is r.pipe


def test_pipe_ends_are_one_way(table):
    r, w = table.pipe()
    with pytest.raises(io.UnsupportedOperation):
        table.read(w, 1)
    with pytest.raises(io.UnsupportedOperation):
        table.write(r, b"x")


def test_eof_after_write_end_closed(table):
    r, w = table.pipe()
    table.write(w, b"last")
    table.close(w)
    assert table.read(r, 10) == b"last"
    assert table.read(r, 10) == b""
    assert w.ref == 0 and w.kind is FileKind.NONE


def test_dup_keeps_pipe_open(table):
    r, w = table.pipe()
    assert table.dup(w) is w
    table.close(w)
    assert w.ref == 1
    table.write(w, b"still")
    table.close(w)
    assert table.read(r, 10) == b"still"
    assert table.read(r, 10) == b""


def test_dup_and_close_of_closed_file_panic(table):
    r, w = table.pipe()
    table.close(r)
    with pytest.raises(KernelPanic):
        table.dup(r)
    with pytest.raises(KernelPanic):
        table.close(r)


def test_table_full(fs):
    small = FileTable(fs, nfile=2)
    small.pipe()
    with pytest.raises(OSError) as info:
        small.alloc()
    assert info.value.errno == errno.ENFILE


def test_failed_pipe_releases_entry(fs):
    small = FileTable(fs, nfile=1)
    with pytest.raises(OSError):
        small.pipe()
    f = small.alloc()
    assert f.ref == 1


def test_inode_write_then_read(fs, table):
    _create(fs, "f")
    data = bytes(range(256)) * 32
    w = table.open_inode(fs.namei("/f"), False, True)
    assert table.write(w, data) == len(data)
    assert w.off == len(data)
    r = table.open_inode(fs.namei("/f"), True, False)
    assert table.read(r, len(data)) == data
    assert r.off == len(data)
    assert table.read(r, 10) == b""
    with pytest.raises(io.UnsupportedOperation):
        table.write(r, b"x")


def test_inode_write_survives_remount(disk, fs, table):
    _create(fs, "keep")
    f = table.open_inode(fs.namei("/keep"), True, True)
    table.write(f, b"kept")
    table.close(f)
    other = _mount(disk)
    ip = other.namei("/keep")
    other.ilock(ip)
    assert other.readi(ip, 0, 100) == b"kept"
    other.iunlockput(ip)


def test_stat_of_inode_and_pipe(fs, table):
    _create(fs, "st")
    f = table.open_inode(fs.namei("/st"), True, True)
    table.write(f, b"abc")
    st = table.stat(f)
    assert st.size == len(b"abc")
    assert st.type == InodeType.FILE
    r, _ = table.pipe()
    with pytest.raises(io.UnsupportedOperation):
        table.stat(r)


def test_close_drops_inode_reference(fs, table):
    _create(fs, "ref")
    ip = fs.namei("/ref")
    held = fs.idup(ip)
    before = ip.ref
    f = table.open_inode(ip, True, False)
    table.close(f)
    assert ip.ref == before - 1
    fs.iput(held)