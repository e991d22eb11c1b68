import io

import pytest

from sixfs.grep import grep, main, match, matchhere, matchstar


@pytest.mark.parametrize(
    "re, text, expected",
    [
        ("^ab", "abc", True),
        ("^ab", "cab", False),
        ("b$", "ab", True),
        ("b$", "ba", False),
        ("a.c", "xabcx", True),
        ("a*b", "b", True),
        ("^a*$", "aaa", True),
        ("^a*$", "aab", False),
        ("", "", True),
        (".*z", "abz", True),
        ("x", "", False),
    ],
)
def test_match(re, text, expected):
    assert match(re, text) is expected


def test_matchhere_anchored():
    assert matchhere("ab", "abc") is True
    assert matchhere("bc", "abc") is False


def test_matchstar():
    assert matchstar("a", "b", "aaab") is True
    assert matchstar("a", "b", "aaac") is False
    assert matchstar(".", "c", "xyzc") is True


def test_long_text_does_not_recurse_deeply():
    assert match("z$", "a" * 5000 + "z") is True


def test_grep_stream():
    lines = list(grep("foo", io.BytesIO(b"foo\nbar\nfood\n")))
    assert lines == [b"foo\n", b"food\n"]


def test_grep_drops_unterminated_last_line():
    assert list(grep("foo", io.BytesIO(b"foo\nfoo"))) == [b"foo\n"]


def test_grep_spans_reads():
    data = b"".join(b"line %d\n" % i for i in range(500))
    lines = list(grep("^line", io.BytesIO(data)))
    assert b"".join(lines) == data


def test_main_file(tmp_path, capsysbinary):
    path = tmp_path / "input.txt"
    path.write_bytes(b"alpha\nbeta\ngamma\n")
    assert main(["a$", str(path)]) == 0
    assert capsysbinary.readouterr().out == b"alpha\nbeta\ngamma\n"


def test_main_missing_file(tmp_path, capsysbinary):
    assert main(["x", str(tmp_path / "absent")]) == 1
    assert b"grep: cannot open" in capsysbinary.readouterr().out


def test_main_usage():
    assert main([]) == 1