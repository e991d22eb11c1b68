"""Minimal printf-style formatting as done by the user library and the kernel."""

from __future__ import annotations

from sixfs.layout import KernelPanic

UPPER_DIGITS = "0123456789ABCDEF"
LOWER_DIGITS = "0123456789abcdef"


def format_int(value: int, base: int = 10, signed: bool = True, digits: str = UPPER_DIGITS) -> str:
    """Render a 32-bit integer; unsigned rendering shows its two's complement."""
    if not 2 <= base <= len(digits):
        raise ValueError(f"unsupported base {base}")
    xx = ((int(value) + 2**31) % 2**32) - 2**31
    neg = signed and xx < 0
    x = -xx if neg else xx & 0xFFFFFFFF
    out = []
    while True:
        x, d = divmod(x, base)
        out.append(digits[d])
        if x == 0:
            break
    if neg:
        out.append("-")
    return "".join(reversed(out))


def _format(fmt: str, args, digits: str, with_char: bool) -> str:
    pending = iter(args)

    def take():
        try:
            return next(pending)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out = []
    chars = iter(fmt)
    for ch in chars:
        if ch != "%":
            out.append(ch)
            continue
        spec = next(chars, None)
        if spec is None:
            break
        if spec == "d":
            out.append(format_int(take(), 10, True, digits))
        elif spec in "xp":
            out.append(format_int(take(), 16, False, digits))
        elif spec == "s":
            s = take()
            out.append("(null)" if s is None else str(s))
        elif spec == "c" and with_char:
            c = take()
            out.append(chr(c & 0xFF) if isinstance(c, int) else str(c)[:1])
        elif spec == "%":
            out.append("%")
        else:
            # Unknown sequences are shown to draw attention.
            out.append("%" + spec)
    return "".join(out)


def uprintf(fmt: str, *args) -> str:
    """Format as the user library's printf: %d %x %p %s %c %%."""
    return _format(fmt, args, UPPER_DIGITS, True)


def cprintf(fmt: str, *args) -> str:
    """Format as the kernel's console printf: %d %x %p %s %%."""
    if fmt is None:
        raise KernelPanic("null fmt")
    return _format(fmt, args, LOWER_DIGITS, False)