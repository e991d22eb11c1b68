from sixfs.keyboard import KEY_UP, Keyboard

LETTERS = list(range(0x10, 0x1A))  # top letter row
LSHIFT, LSHIFT_UP = 0x2A, 0xAA
CAPS, CAPS_UP = 0x3A, 0xBA
LCTRL = 0x1D


def _normal():
    return Keyboard().feed(LETTERS)


def test_single_key():
    assert Keyboard().getc(0x1E) == ord("a")


def test_letter_row_is_lowercase():
    normal = _normal()
    assert len(normal) == len(LETTERS)
    assert normal.isalpha() and normal.islower()


def test_shift_gives_uppercase():
    assert Keyboard().feed([LSHIFT] + LETTERS) == _normal().upper()


def test_shift_release():
    kb = Keyboard()
    kb.feed([LSHIFT, LSHIFT_UP])
    assert kb.feed(LETTERS) == _normal()
    assert kb.shift == 0


def test_capslock_toggles():
    kb = Keyboard()
    assert kb.feed([CAPS, CAPS_UP] + LETTERS) == _normal().upper()
    assert kb.feed([CAPS, CAPS_UP] + LETTERS) == _normal()


def test_capslock_with_shift_is_lowercase():
    assert Keyboard().feed([CAPS, CAPS_UP, LSHIFT] + LETTERS) == _normal()


def test_control_letters():
    ctl = Keyboard().feed([LCTRL] + LETTERS)
    assert ctl == bytes(c & 0x1F for c in _normal().upper())


def test_release_returns_nothing():
    kb = Keyboard()
    assert kb.getc(0x9E) == 0
    assert kb.feed([0x1E, 0x9E]) == kb.feed([0x1E])


def test_escaped_arrow():
    assert Keyboard().feed([0xE0, 0x48]) == bytes([KEY_UP])


def test_enter_and_keypad_enter():
    assert Keyboard().feed([0x1C]) == b"\n"
    assert Keyboard().feed([0xE0, 0x1C]) == Keyboard().feed([0x1C])


def test_control_enter_is_carriage_return():
    assert Keyboard().feed([LCTRL, 0x1C]) == b"\r"