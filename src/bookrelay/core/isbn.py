"""ISBN cleanup and ISBN-13 to ISBN-10 conversion."""

from __future__ import annotations

import re

_NON_ISBN_RE = re.compile(r"[^0-9Xx]")

# Only Bookland 978 ISBNs have an ISBN-10 equivalent.
_ISBN10_PREFIX = "978"


def strip_isbn(raw: str) -> str:
    """Drop everything but digits and the X check character (upper-cased)."""
    return _NON_ISBN_RE.sub("", raw).upper()


def normalize_isbn(raw: str) -> str:
    """Clean an ISBN for lookups, keeping the raw input if nothing survives."""
    return strip_isbn(raw) or raw.strip()


def isbn10_check_digit(nine_digits: str) -> str:
    """Mod-11 check over weights 10..2; a check value of 10 is written "X"."""
    total = sum(int(d) * w for d, w in zip(nine_digits, range(10, 1, -1)))
    check = (11 - total % 11) % 11
    return "X" if check == 10 else str(check)


def derive_alternate(isbn: str) -> str:
    """Convert a 978-prefixed ISBN-13 to its ISBN-10 form.

    Anything else is returned unchanged, so callers must compare the result
    with the input before treating it as an ISBN-10.
    """
    if len(isbn) != 13 or not isbn.startswith(_ISBN10_PREFIX):
        return isbn
    body = isbn[3:12]
    if not body.isdigit():
        return isbn
    return body + isbn10_check_digit(body)


def alternate_isbn(isbn: str) -> str | None:
    """Return the ISBN-10 form, or None when there isn't one."""
    alternate = derive_alternate(isbn)
    return alternate if alternate != isbn else None
