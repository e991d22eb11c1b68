"""Console line discipline: echoing, line editing and cooked reads."""

from __future__ import annotations

import threading

INPUT_BUF = 128
BACKSPACE = 0x100


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


class Console:
    """Collects typed characters into lines and echoes output as text."""

    def __init__(self, on_procdump=None):
        self.on_procdump = on_procdump
        self._cond = threading.Condition()
        self._buf = [0] * INPUT_BUF
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index
        self._out: list[str] = []

    def _putc(self, c: int) -> None:
        if c == BACKSPACE:
            self._out.append("\b \b")
        else:
            self._out.append(chr(c & 0xFF))

    def intr(self, chars) -> None:
        """Handle typed characters (a string or an iterable of codes)."""
        doprocdump = False
        with self._cond:
            for c in chars:
                if isinstance(c, str):
                    c = ord(c)
                if c == _ctrl("P"):
                    doprocdump = True
                elif c == _ctrl("U"):
                    while self._e != self._w and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n"):
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c in (_ctrl("H"), 0x7F):
                    if self._e != self._w:
                        self._e -= 1
                        self._putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self._putc(c)
                    if c in (ord("\n"), _ctrl("D")) or self._e == self._r + INPUT_BUF:
                        self._w = self._e
                        self._cond.notify_all()
        if doprocdump and self.on_procdump is not None:
            self.on_procdump()

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; ^D marks end of file."""
        target = n
        out = bytearray()
        with self._cond:
            while n > 0:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _ctrl("D"):
                    if n < target:
                        # Keep ^D so the next read returns nothing.
                        self._r -= 1
                    break
                out.append(c)
                n -= 1
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data) -> int:
        """Write bytes to the console output."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        data = bytes(data)
        with self._cond:
            for b in data:
                self._putc(b)
        return len(data)

    def output(self) -> str:
        """Everything echoed or written so far."""
        with self._cond:
            return "".join(self._out)