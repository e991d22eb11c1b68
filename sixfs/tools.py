"""Small user programs over a file-system image: cat, echo and ls."""

from __future__ import annotations

import errno
import sys

from sixfs.bufcache import BufferCache
from sixfs.disk import MemDisk
from sixfs.fmt import uprintf
from sixfs.fs import FileSystem, Inode
from sixfs.journal import Log
from sixfs.layout import DIRENT_SIZE, DIRSIZ, ROOTDEV, Dirent, InodeType, Stat

_CHUNK = 512
_PATHBUF = 512
_USAGE = "usage: sixfs echo [arg ...] | cat image [file ...] | ls image [path ...]"


def fmtname(path: str) -> str:
    """The last element of a path, blank-padded to DIRSIZ characters."""
    name = path.rpartition("/")[2]
    if len(name) >= DIRSIZ:
        return name
    return name.ljust(DIRSIZ)


def open_image(path) -> FileSystem:
    """Open a file-system image held in a host file, recovering its log."""
    disk = MemDisk.load(path, ROOTDEV)
    cache = BufferCache(disk)
    log = Log(cache, ROOTDEV)
    return FileSystem(cache, log, ROOTDEV)


def _lookup(fs: FileSystem, path: str) -> Inode | None:
    with fs.log.transaction():
        return fs.namei(path)


def _release(fs: FileSystem, ip: Inode) -> None:
    with fs.log.transaction():
        fs.iput(ip)


def _stat(fs: FileSystem, path: str) -> Stat | None:
    ip = _lookup(fs, path)
    if ip is None:
        return None
    try:
        fs.ilock(ip)
        try:
            return fs.stati(ip)
        finally:
            fs.iunlock(ip)
    finally:
        _release(fs, ip)


def cat(fs: FileSystem, path: str) -> bytes:
    """Return the whole contents of the file at ``path``."""
    ip = _lookup(fs, path)
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, f"cat: cannot open {path}", path)
    out = bytearray()
    try:
        while True:
            fs.ilock(ip)
            try:
                chunk = fs.readi(ip, len(out), _CHUNK)
            finally:
                fs.iunlock(ip)
            if not chunk:
                break
            out += chunk
    finally:
        _release(fs, ip)
    return bytes(out)


def echo(args) -> str:
    """The arguments separated by blanks and ended by a newline."""
    args = list(args)
    if not args:
        return ""
    return " ".join(args) + "\n"


def _line(path: str, st: Stat) -> str:
    return uprintf("%s %d %d %d", fmtname(path), st.type, st.ino, st.size)


def ls(fs: FileSystem, path: str) -> list[str]:
    """List a file, or each entry of a directory, as 'name type ino size'."""
    ip = _lookup(fs, path)
    if ip is None:
        raise FileNotFoundError(errno.ENOENT, f"ls: cannot open {path}", path)
    try:
        fs.ilock(ip)
        try:
            st = fs.stati(ip)
            raw = fs.readi(ip, 0, ip.size) if st.type == InodeType.DIR else b""
        finally:
            fs.iunlock(ip)
    finally:
        _release(fs, ip)

    if st.type == InodeType.FILE:
        return [_line(path, st)]
    if st.type != InodeType.DIR:
        return []

    if len(path.encode("utf-8", "surrogateescape")) + 1 + DIRSIZ + 1 > _PATHBUF:
        raise ValueError("ls: path too long")
    lines = []
    for off in range(0, len(raw) - DIRENT_SIZE + 1, DIRENT_SIZE):
        de = Dirent.unpack(raw[off:off + DIRENT_SIZE])
        if de.inum == 0:
            continue
        entry = f"{path}/{de.name}"
        est = _stat(fs, entry)
        if est is None:
            lines.append(f"ls: cannot stat {entry}")
            continue
        lines.append(_line(entry, est))
    return lines


def _write_bytes(data: bytes) -> None:
    sys.stdout.flush()
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


def _main_cat(fs: FileSystem, paths) -> int:
    if not paths:
        while chunk := sys.stdin.buffer.read(_CHUNK):
            _write_bytes(chunk)
        return 0
    for path in paths:
        try:
            data = cat(fs, path)
        except FileNotFoundError:
            print(f"cat: cannot open {path}")
            return 1
        except OSError:
            print("cat: read error")
            return 1
        _write_bytes(data)
    return 0


def _main_ls(fs: FileSystem, paths) -> int:
    status = 0
    for path in paths or ["."]:
        try:
            lines = ls(fs, path)
        except FileNotFoundError:
            print(f"ls: cannot open {path}", file=sys.stderr)
            status = 1
            continue
        except ValueError as exc:
            print(exc)
            status = 1
            continue
        for line in lines:
            print(line)
    return status


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print(_USAGE, file=sys.stderr)
        return 1
    cmd, *rest = args
    if cmd == "echo":
        sys.stdout.write(echo(rest))
        return 0
    if cmd not in ("cat", "ls") or not rest:
        print(_USAGE, file=sys.stderr)
        return 1
    image, *paths = rest
    try:
        fs = open_image(image)
    except OSError:
        print(f"{cmd}: cannot open {image}", file=sys.stderr)
        return 1
    if cmd == "cat":
        return _main_cat(fs, paths)
    return _main_ls(fs, paths)