"""A small grep supporting the ^ . * $ operators."""

from __future__ import annotations

import sys

_BUFSIZE = 1024


def _here(re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if ri == len(re):
            return True
        if ri + 1 < len(re) and re[ri + 1] == "*":
            return _star(re[ri], re, ri + 2, text, ti)
        if re[ri] == "$" and ri + 1 == len(re):
            return ti == len(text)
        if ti < len(text) and (re[ri] == "." or re[ri] == text[ti]):
            ri += 1
            ti += 1
            continue
        return False


def _star(c: str, re: str, ri: int, text: str, ti: int) -> bool:
    while True:
        if _here(re, ri, text, ti):
            return True
        if ti < len(text) and (text[ti] == c or c == "."):
            ti += 1
        else:
            return False


def matchhere(re: str, text: str) -> bool:
    """Whether ``re`` matches at the beginning of ``text``."""
    return _here(re, 0, text, 0)


def matchstar(c: str, re: str, text: str) -> bool:
    """Whether ``c*`` followed by ``re`` matches at the beginning of ``text``."""
    return _star(c, re, 0, text, 0)


def match(re: str, text: str) -> bool:
    """Whether ``re`` matches anywhere in ``text``."""
    if re.startswith("^"):
        return _here(re, 1, text, 0)
    return any(_here(re, 0, text, i) for i in range(len(text) + 1))


def _as_text(pattern) -> str:
    if isinstance(pattern, (bytes, bytearray)):
        return bytes(pattern).decode("latin-1")
    return pattern.encode("utf-8", "surrogateescape").decode("latin-1")


def grep(pattern, stream):
    """Yield the newline-terminated lines of a binary stream that match.

    A final line without a newline is not examined, and a run of bytes
    that fills a read without holding a newline is dropped.
    """
    pat = _as_text(pattern)
    buf = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(buf))
        if not chunk:
            break
        buf += chunk
        *lines, rest = buf.split(b"\n")
        for line in lines:
            if match(pat, line.decode("latin-1")):
                yield line + b"\n"
        buf = rest if lines else b""


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("usage: grep pattern [file ...]", file=sys.stderr)
        return 1
    pattern, *paths = args
    sys.stdout.flush()
    out = sys.stdout.buffer
    try:
        if not paths:
            out.writelines(grep(pattern, sys.stdin.buffer))
            return 0
        for path in paths:
            try:
                stream = open(path, "rb")
            except OSError:
                out.write(f"grep: cannot open {path}\n".encode("utf-8", "surrogateescape"))
                return 1
            with stream:
                out.writelines(grep(pattern, stream))
        return 0
    finally:
        out.flush()