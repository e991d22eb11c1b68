"""A small Unix-style file system on disk images, with a buffer cache, redo log and tools."""

__version__ = "0.1.0"

__all__ = [
    "bufcache",
    "console",
    "disk",
    "files",
    "fmt",
    "fs",
    "grep",
    "journal",
    "keyboard",
    "layout",
    "mkfs",
    "pipe",
    "tools",
]