import pytest

from books import Book, OT_BOOKS, NT_BOOKS, TOTAL_OT, TOTAL_NT
from schedule import (allocate, assemble, assemble_bible, build_url, build_custom_schedule,
                      coerce_progress, coerce_rate, days_needed, normalize_reference,
                      reconcile_progress, apply_check, progress_summary, relink_schedule,
                      InvalidRate, LineCountOutOfRange, PlanError)

SMALL = [Book("A", 3), Book("B", 1), Book("C", 2)]


def _expand(days):
    """Turn allocator output back into (book, chapter) pairs."""
    out = []
    for text in days:
        if not text:
            continue
        for chunk in text.split(", "):
            name, span = chunk.rsplit(" ", 1)
            start, _, end = span.partition("-")
            for ch in range(int(start), int(end or start) + 1):
                out.append((name, ch))
    return out


def _all_chapters(units):
    return [(name, ch) for name, length in units for ch in range(1, length + 1)]


# ── Book lists ────────────────────────────────────────────────────────────────

def test_canonical_totals():
    assert TOTAL_OT == 929
    assert TOTAL_NT == 260
    assert len(OT_BOOKS) == 39
    assert len(NT_BOOKS) == 27


# ── allocate ──────────────────────────────────────────────────────────────────

def test_allocate_spans_units_within_a_day():
    assert allocate(SMALL, 2, 3, False) == ["A 1-2", "A 3, B 1", "C 1-2"]


def test_allocate_without_cycle_leaves_later_days_empty():
    assert allocate(SMALL, 2, 5, False) == ["A 1-2", "A 3, B 1", "C 1-2", "", ""]


def test_allocate_cycles_back_to_first_unit():
    assert allocate(SMALL, 2, 5, True) == ["A 1-2", "A 3, B 1", "C 1-2", "A 1-2", "A 3, B 1"]


def test_allocate_short_final_day_is_silent():
    assert allocate([Book("A", 3)], 2, 2, False) == ["A 1-2", "A 3"]


def test_allocate_single_chapter_never_uses_range_form():
    days = allocate(OT_BOOKS, 2, 465, False)
    assert days[-1] == "Mal 4"
    for d in days:
        for chunk in d.split(", "):
            span = chunk.rsplit(" ", 1)[1]
            start, _, end = span.partition("-")
            assert start != end


def test_allocate_rate_larger_than_book():
    days = allocate(OT_BOOKS, 3, days_needed(OT_BOOKS, 3), False)
    assert days[0] == "Gen 1-3"
    assert days[16] == "Gen 49-50, Exod 1"


@pytest.mark.parametrize("rate", [1, 2, 3, 7, 50, 100, 929])
def test_allocate_covers_every_chapter_once(rate):
    total_days = days_needed(OT_BOOKS, rate)
    days = allocate(OT_BOOKS, rate, total_days, False)
    assert len(days) == total_days
    assert _expand(days) == _all_chapters(OT_BOOKS)


def test_allocate_returns_exactly_total_days():
    assert len(allocate(NT_BOOKS, 5, 400, True)) == 400
    assert len(allocate(NT_BOOKS, 5, 400, False)) == 400


# ── assemble ──────────────────────────────────────────────────────────────────

def test_days_needed():
    assert days_needed(OT_BOOKS, 2) == 465
    assert days_needed(NT_BOOKS, 1) == 260
    assert days_needed(NT_BOOKS, 3) == 87


def test_assemble_two_and_one():
    schedule, progress = assemble_bible(2, 1, "nasb", {})
    assert len(schedule) == 465
    assert [r["day"] for r in schedule] == list(range(1, 466))
    assert schedule[0]["passages"] == "Gen 1-2, Matt 1"
    assert schedule[259]["passages"].endswith(", Rev 22")
    # NT restarts once it runs out
    assert schedule[260]["passages"].endswith(", Matt 1")
    assert schedule[-1]["passages"].startswith("Mal 4, ")
    assert progress == {day: False for day in range(1, 466)}


def test_assemble_one_and_one_cycles_new_testament():
    schedule, _ = assemble_bible(1, 1)
    assert len(schedule) == 929
    restarts = [r["day"] for r in schedule if r["passages"].endswith(", Matt 1")]
    assert restarts == [1, 261, 521, 781]


def test_assemble_longer_new_testament_cycles_old():
    schedule, _ = assemble(NT_BOOKS, 1, SMALL, 1)
    assert len(schedule) == 260
    assert schedule[6]["passages"] == "Matt 7, A 1"
    assert schedule[4]["passages"].endswith(", C 1")


def test_assemble_builds_urls_for_version():
    schedule, _ = assemble_bible(2, 1, "esv")
    assert schedule[0]["url"] == "https://esv.literalword.com/?q=Gen%201-2%2C%20Matt%201"


def test_assemble_is_idempotent():
    previous = {3: True, 9: False}
    first = assemble_bible(4, 2, "lsb", previous)
    second = assemble_bible(4, 2, "lsb", previous)
    assert first == second
    assert previous == {3: True, 9: False}


def test_assemble_keeps_previous_answers():
    _, progress = assemble_bible(100, 100, "nasb", {2: True, 500: True})
    assert progress[2] is True
    assert progress[500] is True
    assert set(range(1, 11)) <= set(progress)
    assert progress[1] is False


@pytest.mark.parametrize("rate", [0, -1, 2001, "abc", "", None, 1.5, True])
def test_assemble_rejects_bad_rates(rate):
    with pytest.raises(InvalidRate) as exc:
        assemble(OT_BOOKS, rate, NT_BOOKS, 1)
    assert exc.value.side == "A"
    assert "between 1 and 2000" in str(exc.value)


def test_assemble_names_the_failing_side():
    with pytest.raises(InvalidRate) as exc:
        assemble_bible(2, 0)
    assert exc.value.side == "NT"
    assert isinstance(exc.value, PlanError)


def test_assemble_accepts_numeric_strings_and_upper_bound():
    schedule, _ = assemble_bible("2000", 2000)
    assert len(schedule) == 1


def test_coerce_rate_ui_bound():
    assert coerce_rate(" 7 ", "OT", 1, 100) == 7
    with pytest.raises(InvalidRate):
        coerce_rate(101, "OT", 1, 100)


# ── build_url ─────────────────────────────────────────────────────────────────

def test_build_url_versions():
    text = "Gen 1-2, Matt 1"
    assert build_url(text, "esv") == "https://esv.literalword.com/?q=Gen%201-2%2C%20Matt%201"
    assert build_url(text, "lsb") == "https://read.lsbible.org/?q=Gen%201-2%2C%20Matt%201"
    assert build_url(text, "nasb") == "https://www.literalword.com/?q=Gen%201-2%2C%20Matt%201"


@pytest.mark.parametrize("version", [None, "", "kjv", "ESV"])
def test_build_url_unknown_version_falls_back(version):
    assert build_url("Ps 23", version) == "https://www.literalword.com/?q=Ps%2023"


def test_build_url_escapes_query_characters():
    assert build_url("John 3:16; Rom 8", "nasb") == (
        "https://www.literalword.com/?q=John%203%3A16%3B%20Rom%208"
    )


def test_relink_schedule():
    rows = relink_schedule([{"day": "1", "passages": "Gen 1"}], "lsb")
    assert rows == [{"day": 1, "passages": "Gen 1", "url": "https://read.lsbible.org/?q=Gen%201"}]


# ── normalize_reference ───────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("gen1:1", "Gen 1:1"),
    ("1john2", "1 John 2"),
    ("rom8,9", "Rom 8, 9"),
    ("  PSALM   23  ", "Psalm 23"),
    ("isa53;55", "Isa 53; 55"),
    ("matt 5, 6", "Matt 5, 6"),
    ("", ""),
])
def test_normalize_reference(raw, expected):
    assert normalize_reference(raw) == expected


# ── custom plans ──────────────────────────────────────────────────────────────

def test_custom_schedule_skips_blank_lines():
    rows = build_custom_schedule("gen1\n\n   \n  matt2 \r\n", "esv")
    assert rows == [
        {"day": 1, "passages": "Gen 1", "url": "https://esv.literalword.com/?q=Gen%201"},
        {"day": 2, "passages": "Matt 2", "url": "https://esv.literalword.com/?q=Matt%202"},
    ]


def test_custom_schedule_upper_bound():
    assert len(build_custom_schedule("\n".join(["Ps 1"] * 2000))) == 2000
    with pytest.raises(LineCountOutOfRange) as exc:
        build_custom_schedule("\n".join(["Ps 1"] * 2001))
    assert exc.value.count == 2001


@pytest.mark.parametrize("text", ["", "\n \n\t\n", None])
def test_custom_schedule_needs_a_line(text):
    with pytest.raises(LineCountOutOfRange) as exc:
        build_custom_schedule(text)
    assert exc.value.count == 0


# ── progress ──────────────────────────────────────────────────────────────────

def test_reconcile_progress_fills_gaps_only():
    previous = {1: True, 5: False, 1000: True}
    result = reconcile_progress(previous, 3)
    assert result == {1: True, 2: False, 3: False, 5: False, 1000: True}
    assert previous == {1: True, 5: False, 1000: True}


def test_coerce_progress_from_json_keys():
    assert coerce_progress({"1": True, "2": 0, "x": True}) == {1: True, 2: False}
    assert coerce_progress(None) == {}


def test_apply_check_single_day():
    progress = {1: False}
    assert apply_check(progress, 1, True) == {1: True}
    assert progress == {1: False}


def test_apply_check_range_in_either_direction():
    assert apply_check({}, 5, True, anchor=2) == {2: True, 3: True, 4: True, 5: True}
    assert apply_check({3: True, 4: True}, 3, False, anchor=4) == {3: False, 4: False}


def test_progress_summary_ignores_days_outside_plan():
    assert progress_summary({1: True, 2: False, 9: True}, 3) == (1, 3)
