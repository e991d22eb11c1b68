"""PC keyboard scancode decoding."""

from __future__ import annotations

NO = 0

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctrl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_KEYPAD = (
    "\x00\x00\x00\x00\x00\x00\x00\x00"
    "\x00\x00\x00\x00\x00\x00\x00" "7"
    "89-456+1"
    "230.\x00\x00\x00\x00"
)

_SPECIAL = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}


def _table(head, extra: dict) -> list[int]:
    table = [NO] * 256
    for code, ch in enumerate(head):
        table[code] = ord(ch) if isinstance(ch, str) else ch
    for code, value in {**_SPECIAL, **extra}.items():
        table[code] = value
    return table


NORMALMAP = _table(
    "\x00\x1b123456"
    "7890-=\b\t"
    "qwertyui"
    "op[]\n\x00as"
    "dfghjkl;"
    "'`\x00\\zxcv"
    "bnm,./\x00*"
    "\x00 \x00\x00\x00\x00\x00\x00" + _KEYPAD,
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

SHIFTMAP = _table(
    "\x00\x1b!@#$%^"
    "&*()_+\b\t"
    "QWERTYUI"
    "OP{}\n\x00AS"
    "DFGHJKL:"
    "\"~\x00|ZXCV"
    "BNM<>?\x00*"
    "\x00 \x00\x00\x00\x00\x00\x00" + _KEYPAD,
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

CTLMAP = _table(
    [NO] * 16
    + [_ctrl(c) for c in "QWERTYUI"]
    + [_ctrl("O"), _ctrl("P"), NO, NO, ord("\r"), NO, _ctrl("A"), _ctrl("S")]
    + [_ctrl(c) for c in "DFGHJKL"] + [NO]
    + [NO, NO, NO, _ctrl("\\"), _ctrl("Z"), _ctrl("X"), _ctrl("C"), _ctrl("V")]
    + [_ctrl("B"), _ctrl("N"), _ctrl("M"), NO, NO, _ctrl("/"), NO, NO],
    {0x9C: ord("\r"), 0xB5: _ctrl("/")},
)

_CHARCODE = (NORMALMAP, SHIFTMAP, CTLMAP, CTLMAP)


class Keyboard:
    """Tracks modifier state and turns scancodes into character codes."""

    def __init__(self):
        self.shift = 0

    def getc(self, data: int) -> int:
        """Decode one scancode; return the character code, or 0 for none."""
        data &= 0xFF
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(SHIFTCODE.get(data, 0) | E0ESC)
            return 0
        if self.shift & E0ESC:
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= SHIFTCODE.get(data, 0)
        self.shift ^= TOGGLECODE.get(data, 0)
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c -= ord("a") - ord("A")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def feed(self, scancodes) -> bytes:
        """Decode a sequence of scancodes into the characters they produce."""
        return bytes(c for c in map(self.getc, scancodes) if c)