"""
Reading-plan construction.

Everything here is pure: the same arguments always produce the same rows and
progress maps, and nothing is read from or written to storage. Callers decide
when a recompute is needed and what to do with the result.
"""
import math
import re
from urllib.parse import quote

from books import OT_BOOKS, NT_BOOKS

# ── Limits ────────────────────────────────────────────────────────────────────
RATE_MIN, RATE_MAX = 1, 2000          # accepted by assemble()
UI_RATE_MAX = 100                     # accepted by the planner form
CUSTOM_MIN_LINES, CUSTOM_MAX_LINES = 1, 2000

DEFAULT_VERSION = "nasb"
URL_TEMPLATES = {
    "lsb":  "https://read.lsbible.org/?q={}",
    "esv":  "https://esv.literalword.com/?q={}",
    "nasb": "https://www.literalword.com/?q={}",
}
VERSIONS = tuple(URL_TEMPLATES)


# ── Errors ────────────────────────────────────────────────────────────────────

class PlanError(ValueError):
    """A plan request the user has to correct before anything is generated."""


class InvalidRate(PlanError):
    def __init__(self, side, value, low=RATE_MIN, high=RATE_MAX):
        self.side = side
        self.value = value
        self.low = low
        self.high = high
        super().__init__(
            f"Invalid {side} chapter number. It must be between {low} and {high}."
        )


class LineCountOutOfRange(PlanError):
    def __init__(self, count, low=CUSTOM_MIN_LINES, high=CUSTOM_MAX_LINES):
        self.count = count
        self.low = low
        self.high = high
        super().__init__(
            f"Please enter between {low} and {high} lines for your custom plan "
            f"(got {count})."
        )


def coerce_rate(value, side, low=RATE_MIN, high=RATE_MAX) -> int:
    """Turn a form/JSON value into a chapters-per-day integer or raise InvalidRate."""
    if isinstance(value, bool):
        raise InvalidRate(side, value, low, high)
    if isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            raise InvalidRate(side, value, low, high) from None
    elif isinstance(value, int):
        number = value
    else:
        raise InvalidRate(side, value, low, high)
    if not (low <= number <= high):
        raise InvalidRate(side, value, low, high)
    return number


# ── Sequence allocation ───────────────────────────────────────────────────────

def _chunk(name, start, end):
    return f"{name} {start}" if start == end else f"{name} {start}-{end}"


def allocate(units, rate_per_day: int, total_days: int, cycle: bool) -> list:
    """Spread ``units`` over ``total_days`` days at ``rate_per_day`` sub-items a day.

    Returns exactly ``total_days`` strings such as ``"Gen 50, Exod 1"``. Once the
    list runs out, ``cycle`` restarts it from the first unit; otherwise the
    remaining days come back short or empty.
    """
    days = []
    index, offset = 0, 1

    for _day in range(total_days):
        chunks = []
        remaining = rate_per_day
        while remaining > 0:
            if index >= len(units):
                if not cycle or not units:
                    break
                index, offset = 0, 1
            name, length = units[index]
            available = length - offset + 1
            if available <= remaining:
                chunks.append(_chunk(name, offset, length))
                remaining -= available
                index, offset = index + 1, 1
            else:
                chunks.append(_chunk(name, offset, offset + remaining - 1))
                offset += remaining
                remaining = 0
        days.append(", ".join(chunks))

    return days


def days_needed(units, rate: int) -> int:
    return math.ceil(sum(length for _name, length in units) / rate)


# ── Links ─────────────────────────────────────────────────────────────────────

def build_url(text: str, version=None) -> str:
    template = URL_TEMPLATES.get(version, URL_TEMPLATES[DEFAULT_VERSION])
    return template.format(quote(text, safe="-_.!~*'()"))


def relink_schedule(rows, version) -> list:
    """Recompute links for stored ``{day, passages}`` rows."""
    return [
        {"day": int(r["day"]), "passages": r["passages"], "url": build_url(r["passages"], version)}
        for r in rows
    ]


# ── Progress ──────────────────────────────────────────────────────────────────

def coerce_progress(progress) -> dict:
    """JSON round-trips turn day keys into strings; bring them back to ints."""
    out = {}
    for day, done in (progress or {}).items():
        try:
            out[int(day)] = bool(done)
        except (TypeError, ValueError):
            continue
    return out


def reconcile_progress(previous, total_days: int) -> dict:
    """Every day in 1..total_days gets an entry; existing answers are kept as-is."""
    progress = dict(previous or {})
    for day in range(1, total_days + 1):
        if day not in progress:
            progress[day] = False
    return progress


def apply_check(progress, day: int, checked: bool, anchor=None) -> dict:
    """Set one day, or the inclusive run between ``anchor`` and ``day`` (shift-click)."""
    updated = dict(progress or {})
    if anchor is None:
        updated[day] = checked
        return updated
    for d in range(min(anchor, day), max(anchor, day) + 1):
        updated[d] = checked
    return updated


def progress_summary(progress, total_days: int):
    done = sum(1 for day in range(1, total_days + 1) if (progress or {}).get(day))
    return done, total_days


# ── Assembly ──────────────────────────────────────────────────────────────────

def assemble(list_a, rate_a, list_b, rate_b, version=DEFAULT_VERSION,
             previous_progress=None, labels=("A", "B")):
    """Build the combined day-by-day schedule for two independently paced lists.

    Returns ``(schedule, progress_map)``. The shorter list cycles so both sides
    have a reading on every day of the longer one.
    """
    rate_a = coerce_rate(rate_a, labels[0])
    rate_b = coerce_rate(rate_b, labels[1])

    days_a = days_needed(list_a, rate_a)
    days_b = days_needed(list_b, rate_b)
    total_days = max(days_a, days_b)

    chunks_a = allocate(list_a, rate_a, total_days, days_a < total_days)
    chunks_b = allocate(list_b, rate_b, total_days, days_b < total_days)

    schedule = []
    for day in range(1, total_days + 1):
        text_a = chunks_a[day - 1] if day <= len(chunks_a) else ""
        text_b = chunks_b[day - 1] if day <= len(chunks_b) else ""
        passages = f"{text_a}, {text_b}"
        schedule.append({"day": day, "passages": passages, "url": build_url(passages, version)})

    return schedule, reconcile_progress(previous_progress, total_days)


def assemble_bible(ot_chapters, nt_chapters, version=DEFAULT_VERSION, previous_progress=None):
    """The default planner: Old and New Testament read side by side."""
    return assemble(OT_BOOKS, ot_chapters, NT_BOOKS, nt_chapters, version,
                    previous_progress, labels=("OT", "NT"))


# ── Free-form references ──────────────────────────────────────────────────────

_SEPARATOR_NO_SPACE = re.compile(r"([,;])(?!\s)")
_LETTERS_DIGITS = re.compile(r"([A-Za-z]+)(\d+)")
_DIGITS_LETTERS = re.compile(r"(\d+)([A-Za-z]+)")


def normalize_reference(line: str) -> str:
    """Tidy a hand-typed reference: ``"1john2"`` -> ``"1 John 2"``.

    Cosmetic only; book names are not checked against any list.
    """
    if not line:
        return ""
    text = line.strip()
    text = _SEPARATOR_NO_SPACE.sub(r"\1 ", text)
    text = _LETTERS_DIGITS.sub(r"\1 \2", text)
    text = _DIGITS_LETTERS.sub(r"\1 \2", text)
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split())


def build_custom_schedule(text: str, version=DEFAULT_VERSION) -> list:
    lines = [line.strip() for line in (text or "").split("\n")]
    lines = [line for line in lines if line]
    if not (CUSTOM_MIN_LINES <= len(lines) <= CUSTOM_MAX_LINES):
        raise LineCountOutOfRange(len(lines))

    schedule = []
    for i, line in enumerate(lines):
        passages = normalize_reference(line)
        schedule.append({"day": i + 1, "passages": passages, "url": build_url(passages, version)})
    return schedule
