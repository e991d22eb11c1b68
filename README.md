# sixfs

`sixfs` is a small Unix-style file system written in plain Python. It works
on disk images held in memory, loaded from a file or saved to one, and is
built in layers:

- **Layout** – block size, limits and the on-disk records: super block,
  inodes and directory entries, with `pack()`/`unpack()` for each
  (`sixfs.layout`). An image is: boot block, super block, log, inode
  blocks, free-block bitmap, then data blocks.
- **Disk** – an in-memory block device (`sixfs.disk.MemDisk`) with
  `load(path, dev)`, `save(path)`, `nblocks()` and `rw(buf)`.
- **Buffer cache** – a fixed pool of block buffers
  (`sixfs.bufcache.BufferCache`): `read`, `write`, `release`, and the
  `block(dev, blockno)` context manager. Unused, clean buffers are recycled
  least recently used first.
- **Log** – a physical redo log (`sixfs.journal.Log`). Blocks changed in a
  transaction are copied to the log, committed, then installed at their
  home locations. Creating a `Log` recovers any committed transaction left
  in the image.
- **Inodes and directories** – `sixfs.fs.FileSystem`: inode allocation,
  reference counting and locking, reading and writing file contents,
  directory lookup and linking, and path lookup with `namei` and
  `nameiparent`. An inode whose last reference is dropped while it has no
  links is truncated and freed.
- **Open files and pipes** – `sixfs.files.FileTable` keeps
  reference-counted open files over inodes (`open_inode`) or pipes
  (`pipe`); `sixfs.pipe.Pipe` is a bounded 512-byte pipe.
- **Console and keyboard** – `sixfs.console.Console` is a line-editing
  input buffer (backspace, ^U to kill a line, ^D for end of file, ^P calls
  an optional callback); `sixfs.keyboard.Keyboard` decodes PC scan codes,
  tracking shift, control and caps lock.
- **Tools** – an image builder, `grep`, `cat`, `echo` and `ls`.

It needs nothing beyond the standard library and runs on Python 3.10 and
later.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Building an image

`sixfs-mkfs` creates a fresh 1000-block image with room for 200 inodes and
copies files from the current directory into its root directory. Names may
not contain `/`, and a leading underscore is dropped, so `_cat` is stored
as `cat`:

```
sixfs-mkfs fs.img README notes.txt
```

From Python, `sixfs.mkfs.build_image(files)` takes a mapping of names to
bytes (or a sequence of pairs) and returns the image. The lower-level
`sixfs.mkfs.ImageBuilder(size, ninodes, nlog)` lets you call `ialloc`,
`iappend` and `add_file` yourself; `finish()` rounds the root directory up
to a whole block, writes the free-block bitmap and returns the image bytes.

## Looking inside an image

`sixfs-tools` runs one of three small programs:

```
sixfs-tools echo hello world
sixfs-tools cat fs.img README
sixfs-tools ls fs.img /
```

`cat` with no file names copies standard input; `ls` with no paths lists
the root directory. The functions behind these are in `sixfs.tools`:

```python
from sixfs.tools import open_image, ls, cat

fs = open_image("fs.img")
for line in ls(fs, "/"):
    print(line)
print(cat(fs, "/README").decode())
```

`ls` returns one line per entry: the name blank-padded by `fmtname`, then
type, inode number and size. `cat` returns the file's bytes. Both raise
`FileNotFoundError` for a missing path.

## Searching text

`sixfs-grep` prints the lines of its files (or of standard input) that
match a pattern using `^`, `.`, `*` and `$`:

```
sixfs-grep '^a.*z$' words.txt
```

Only lines ending in a newline are examined. The matcher is
`sixfs.grep.match(re, text)`; `sixfs.grep.grep(pattern, stream)` yields
matching lines from a binary stream.

## Working with the layers

A file system is put together from a disk, a buffer cache and a log:

```python
from sixfs.disk import MemDisk
from sixfs.bufcache import BufferCache
from sixfs.journal import Log
from sixfs.fs import FileSystem

disk = MemDisk.load("fs.img", 1)
cache = BufferCache(disk, 30)
log = Log(cache, 1)
fs = FileSystem(cache, log, 1)
```

Every update that writes blocks must run inside a log transaction, with
`log.begin_op()` / `log.end_op()` or the `log.transaction()` context
manager. After the transaction ends the changes are on the in-memory disk;
`disk.save(path)` writes the image back to a file.

Inodes of type `InodeType.DEV` are served by objects placed in
`fs.devsw`, keyed by major number, that have `read(ip, n)` and
`write(ip, data)` methods.

Internal inconsistencies – freeing a free block, running out of inodes or
buffers, a transaction too big for the log – raise
`sixfs.layout.KernelPanic`.

## Formatting

`sixfs.fmt.uprintf(fmt, *args)` returns text formatted with `%d`, `%x`,
`%p`, `%s`, `%c` and `%%`, hexadecimal in upper case.
`sixfs.fmt.cprintf(fmt, *args)` does the same without `%c` and with lower
case hexadecimal. `format_int` renders a 32-bit integer in a given base.

## What it does not do

There is no command to change an existing image: nothing creates, removes
or links files or directories in it, and there is no `mkdir`, `rm` or `ln`.
Such changes can only be made through the `FileSystem` methods
(`ialloc`, `writei`, `dirlink`, ...) inside a transaction. There are no
processes, no system calls and no way to run programs stored in an image.