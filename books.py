from collections import namedtuple

Book = namedtuple("Book", ["name", "chapters"])

# ── Canonical reading order (abbreviations as the reading sites accept them) ──

OT_BOOKS = [
    Book("Gen", 50),    Book("Exod", 40),   Book("Lev", 27),
    Book("Num", 36),    Book("Deut", 34),   Book("Josh", 24),
    Book("Judg", 21),   Book("Ruth", 4),    Book("1 Sam", 31),
    Book("2 Sam", 24),  Book("1 Kgs", 22),  Book("2 Kgs", 25),
    Book("1 Chr", 29),  Book("2 Chr", 36),  Book("Ezra", 10),
    Book("Neh", 13),    Book("Est", 10),    Book("Job", 42),
    Book("Ps", 150),    Book("Prov", 31),   Book("Eccl", 12),
    Book("Song", 8),    Book("Isa", 66),    Book("Jer", 52),
    Book("Lam", 5),     Book("Ezek", 48),   Book("Dan", 12),
    Book("Hos", 14),    Book("Joel", 3),    Book("Amos", 9),
    Book("Obad", 1),    Book("Jonah", 4),   Book("Mic", 7),
    Book("Nah", 3),     Book("Hab", 3),     Book("Zeph", 3),
    Book("Hag", 2),     Book("Zech", 14),   Book("Mal", 4),
]

NT_BOOKS = [
    Book("Matt", 28),    Book("Mark", 16),    Book("Luke", 24),
    Book("John", 21),    Book("Acts", 28),    Book("Rom", 16),
    Book("1 Cor", 16),   Book("2 Cor", 13),   Book("Gal", 6),
    Book("Eph", 6),      Book("Phil", 4),     Book("Col", 4),
    Book("1 Thess", 5),  Book("2 Thess", 3),  Book("1 Tim", 6),
    Book("2 Tim", 4),    Book("Titus", 3),    Book("Philem", 1),
    Book("Heb", 13),     Book("Jas", 5),      Book("1 Pet", 5),
    Book("2 Pet", 3),    Book("1 John", 5),   Book("2 John", 1),
    Book("3 John", 1),   Book("Jude", 1),     Book("Rev", 22),
]

TOTAL_OT = sum(b.chapters for b in OT_BOOKS)  # 929
TOTAL_NT = sum(b.chapters for b in NT_BOOKS)  # 260
