import pytest

from chatroom.clock import ManualClock, format_time
from chatroom.sanitize import strip_markup
from chatroom.validation import parse_limit


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Ana", "Ana"),
        ("  Ana  ", "Ana"),
        ("<b>Ana</b>", "Ana"),
        ("<script>alert('x')</script>Ana", "Ana"),
        ("<STYLE>p {}</STYLE> hi", "hi"),
        ("a <!-- note --> b", "a  b"),
        ("1 < 2 and 3 > 2", "1 < 2 and 3 > 2"),
        ("<img src=x onerror=alert(1)>", ""),
        (None, ""),
    ],
)
def test_strip_markup(raw, expected):
    assert strip_markup(raw) == expected


def test_parse_limit_accepts_positive_integers():
    assert parse_limit(None) == (None, [])
    assert parse_limit(5) == (5, [])
    assert parse_limit(" 7 ") == (7, [])
    assert parse_limit(str(2**70)) == (None, [])


def test_manual_clock_only_moves_forward():
    clock = ManualClock(100)
    assert clock.advance(2.5) == 102.5
    clock.set(200)
    assert clock.now() == 200
    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        clock.set(150)


def test_format_time_has_second_resolution():
    stamp = format_time(ManualClock(1_700_000_000).now())
    hours, minutes, seconds = stamp.split(":")
    assert len(stamp) == 8
    assert 0 <= int(hours) < 24 and 0 <= int(minutes) < 60 and 0 <= int(seconds) < 60


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("<<b>i>x", "x"),
        ("<<b>script>alert(1)<</b>/script>", ""),
        ("<<b>script>alert(1)<</b>/script>hi", "hi"),
        ("<scr<b>ipt>alert(1)</scr</b>ipt> ok", "ok"),
        ("<<<b>b>i>Ana", "Ana"),
    ],
)
def test_strip_markup_removes_tags_rebuilt_by_stripping(raw, expected):
    cleaned = strip_markup(raw)
    assert cleaned == expected
    assert strip_markup(cleaned) == cleaned
