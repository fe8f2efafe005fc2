"""A1-style cell addresses.

Columns are limited to two letters (``A`` .. ``ZZ``) and rows to unsigned
32-bit integers starting at 1.
"""

from __future__ import annotations

import re

from gridcalc.errors import InvalidAddressError

_ADDR_RE = re.compile(r"([A-Za-z]+)([0-9]+)")

MAX_COL_LETTERS = 2
FIRST_COL = "A"
LAST_COL = "ZZ"
MAX_ROW = 2**32 - 1


def col_letter_to_index(letters: str) -> int:
    """Convert column letter(s) to 0-based index.  A=0, B=1, ..., Z=25, AA=26."""
    idx = 0
    for ch in letters:
        idx = idx * 26 + (ord(ch) - ord("A") + 1)
    return idx - 1


def index_to_col_letter(idx: int) -> str:
    """Convert 0-based column index to letter(s).  0=A, 25=Z, 26=AA."""
    result = ""
    n = idx + 1
    while n > 0:
        n, rem = divmod(n - 1, 26)
        result = chr(65 + rem) + result
    return result


_LAST_COL_INDEX = col_letter_to_index(LAST_COL)


class CellAddress:
    """Immutable column/row coordinate.

    Build instances with :meth:`parse`; the constructor trusts its input.
    """

    __slots__ = ("col", "row")

    col: str
    row: int

    def __init__(self, col: str, row: int) -> None:
        object.__setattr__(self, "col", col)
        object.__setattr__(self, "row", row)

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @classmethod
    def parse(cls, text: str) -> CellAddress:
        """Parse ``"b12"`` into ``CellAddress("B", 12)``.

        Raises:
            InvalidAddressError: Malformed text, column longer than two
                letters, or a row outside ``1 .. 2**32 - 1``.
        """
        m = _ADDR_RE.fullmatch(text)
        if not m:
            raise InvalidAddressError(text)
        col = m.group(1).upper()
        if len(col) > MAX_COL_LETTERS:
            raise InvalidAddressError(text, "Column address too big")
        row = int(m.group(2))
        if row < 1 or row > MAX_ROW:
            raise InvalidAddressError(text, f"row must be between 1 and {MAX_ROW}")
        return cls(col, row)

    def less_col(self, other: CellAddress) -> bool:
        """Column-only ordering: shorter columns first, then letter by letter."""
        return (len(self.col), self.col) < (len(other.col), other.col)

    def leq_col(self, other: CellAddress) -> bool:
        return self.col == other.col or self.less_col(other)

    def next_col(self) -> CellAddress:
        """Return the address one column to the right (``Z1`` -> ``AA1``).

        Raises:
            InvalidAddressError: If the column is already ``ZZ``.
        """
        idx = col_letter_to_index(self.col) + 1
        if idx > _LAST_COL_INDEX:
            raise InvalidAddressError(str(self), "No more columns")
        return CellAddress(index_to_col_letter(idx), self.row)

    def with_row(self, row: int) -> CellAddress:
        return CellAddress(self.col, row)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CellAddress):
            return NotImplemented
        return self.col == other.col and self.row == other.row

    def __hash__(self) -> int:
        return hash((self.col, self.row))

    def __str__(self) -> str:
        return f"{self.col}{self.row}"

    def __repr__(self) -> str:
        return f"CellAddress({self.col!r}, {self.row})"


def parse_range(text: str) -> tuple[CellAddress, CellAddress]:
    """Parse ``"A1:C3"`` into its two corner addresses."""
    start, sep, end = text.partition(":")
    if not sep:
        raise InvalidAddressError(text, "expected a range like A1:C3")
    return CellAddress.parse(start.strip()), CellAddress.parse(end.strip())
