import errno

import pytest

from sixfs.bufcache import BufferCache
from sixfs.disk import MemDisk
from sixfs.fs import FileSystem, Inode, namecmp, skipelem
from sixfs.journal import Log
from sixfs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINODE,
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


def _create(fs, name, itype=InodeType.FILE, parent=None):
    with fs.log.transaction():
        ip = fs.ialloc(itype)
        fs.ilock(ip)
        ip.nlink = 1
        fs.iupdate(ip)
        dp = fs.namei("/") if parent is None else fs.idup(parent)
        fs.ilock(dp)
        fs.dirlink(dp, name, ip.inum)
        fs.iunlockput(dp)
        fs.iunlock(ip)
    return ip


def _write(fs, ip, data, off=0):
    with fs.log.transaction():
        fs.ilock(ip)
        try:
            return fs.writei(ip, data, off)
        finally:
            fs.iunlock(ip)


def _read(fs, ip, off, n):
    fs.ilock(ip)
    try:
        return fs.readi(ip, off, n)
    finally:
        fs.iunlock(ip)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("a/bb/c", ("a", "bb/c")),
        ("///a//bb", ("a", "bb")),
        ("a", ("a", "")),
        ("", None),
        ("////", None),
    ],
)
def test_skipelem_examples(path, expected):
    assert skipelem(path) == expected


def test_skipelem_truncates_long_names():
    name, rest = skipelem("/" + "x" * 20 + "/y")
    assert len(name) == 14
    assert rest == "y"


def test_namecmp_compares_first_dirsiz_bytes():
    assert namecmp("abcdefghijklmnopq", "abcdefghijklmn") == 0
    assert namecmp("a", "b") < 0
    assert namecmp("b", "a") > 0


def test_root_lookup(fs):
    root = fs.namei("/")
    assert root.inum == ROOTINO
    fs.ilock(root)
    assert root.type == InodeType.DIR
    parent, off = fs.dirlookup(root, "..")
    assert parent is root
    assert off > 0
    fs.iput(parent)
    fs.iunlockput(root)


def test_create_write_read(fs):
    ip = _create(fs, "hello")
    assert _write(fs, ip, b"data") == len(b"data")
    found = fs.namei("/hello")
    assert found is ip
    assert _read(fs, found, 0, 100) == b"data"


def test_data_survives_remount(disk, fs):
    ip = _create(fs, "keep")
    _write(fs, ip, b"persistent bytes")
    other = _mount(disk)
    again = other.namei("/keep")
    assert again.inum == ip.inum
    assert _read(other, again, 0, 100) == b"persistent bytes"


def test_large_file_uses_indirect_block(fs):
    ip = _create(fs, "big")
    data = bytes(range(256)) * ((NDIRECT + 4) * BSIZE // 256)
    step = 2 * BSIZE
    for off in range(0, len(data), step):
        _write(fs, ip, data[off:off + step], off)
    assert ip.size == len(data)
    assert ip.addrs[NDIRECT] != 0
    assert _read(fs, ip, 0, len(data)) == data


def test_readi_clamps_and_rejects(fs):
    ip = _create(fs, "short")
    _write(fs, ip, b"abcdef")
    assert _read(fs, ip, 2, 100) == b"cdef"
    assert _read(fs, ip, 6, 10) == b""
    with pytest.raises(ValueError):
        _read(fs, ip, 7, 1)


def test_writei_rejects_gap_and_overflow(fs):
    ip = _create(fs, "w")
    with pytest.raises(ValueError):
        _write(fs, ip, b"x", 1)
    with pytest.raises(ValueError):
        _write(fs, ip, bytes(MAXFILE * BSIZE + 1), 0)
    assert ip.size == 0


def test_dirlink_duplicate_raises(fs):
    ip = _create(fs, "dup")
    with fs.log.transaction():
        root = fs.namei("/")
        fs.ilock(root)
        with pytest.raises(FileExistsError) as info:
            fs.dirlink(root, "dup", ip.inum)
        fs.iunlockput(root)
    assert info.value.errno == errno.EEXIST


def test_namei_missing_and_through_file(fs):
    _create(fs, "plain")
    assert fs.namei("/nothing") is None
    assert fs.namei("/plain/inner") is None


def test_nameiparent(fs):
    found = fs.nameiparent("/hello")
    assert found is not None
    dp, name = found
    assert dp.inum == ROOTINO
    assert name == "hello"
    fs.iput(dp)
    assert fs.nameiparent("/") is None


def test_relative_lookup_from_cwd(fs):
    d = _create(fs, "d", InodeType.DIR)
    f = _create(fs, "f", parent=d)
    assert fs.namei("f", d) is f
    assert fs.namei("/d/f") is f
    assert fs.namei("d//f") is f


def test_unlinked_inode_is_freed_and_reused(fs):
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.FILE)
        fs.ilock(ip)
        fs.writei(ip, b"abc", 0)
        inum = ip.inum
        fs.iunlockput(ip)
    assert ip.ref == 0
    with fs.log.transaction():
        again = fs.ialloc(InodeType.FILE)
        fs.ilock(again)
        assert again.inum == inum
        assert again.size == 0
        assert again.addrs == [0] * (NDIRECT + 1)
        fs.iunlock(again)


def test_stati(fs):
    ip = _create(fs, "s")
    _write(fs, ip, b"12345")
    fs.ilock(ip)
    st = fs.stati(ip)
    fs.iunlock(ip)
    assert (st.type, st.dev, st.ino, st.nlink, st.size) == (
        InodeType.FILE,
        ROOTDEV,
        ip.inum,
        1,
        len(b"12345"),
    )


def test_idup_and_iput_count_references(fs):
    root = fs.namei("/")
    before = root.ref
    assert fs.idup(root) is root
    assert root.ref == before + 1
    fs.iput(root)
    fs.iput(root)
    assert root.ref == before - 1


def test_inode_cache_exhaustion(fs):
    held = [fs.iget(inum) for inum in range(1, NINODE + 1)]
    assert len({id(ip) for ip in held}) == NINODE
    with pytest.raises(KernelPanic):
        fs.iget(NINODE + 1)


def test_ilock_unreferenced_panics(fs):
    with pytest.raises(KernelPanic):
        fs.ilock(Inode())


def test_iunlock_unlocked_panics(fs):
    root = fs.namei("/")
    with pytest.raises(KernelPanic):
        fs.iunlock(root)
    fs.iput(root)


class _Device:
    def __init__(self):
        self.written = []

    def read(self, ip, n):
        return b"z" * n

    def write(self, ip, data):
        self.written.append(bytes(data))
        return len(data)


def test_device_inode_uses_devsw(fs):
    device = _Device()
    fs.devsw[1] = device
    with fs.log.transaction():
        ip = fs.ialloc(InodeType.DEV)
        fs.ilock(ip)
        ip.major = 1
        ip.nlink = 1
        fs.iupdate(ip)
        assert fs.readi(ip, 0, 3) == b"zzz"
        assert fs.writei(ip, b"ab", 0) == 2
        ip.major = 2
        with pytest.raises(OSError):
            fs.readi(ip, 0, 1)
        fs.iunlock(ip)
    assert device.written == [b"ab"]