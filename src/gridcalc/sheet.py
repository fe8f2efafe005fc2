"""Sparse grid of cells with reactive recalculation.

Usage::

    sheet = Sheet()
    sheet.set_content("A2", "5")
    sheet.set_content("A3", "6")
    sheet.set_content("A1", "=A2+A3")
    sheet.value_at("A1")    # 11.0
    sheet.content_at("A1")  # "11.000000"

Cells are stored column -> row -> Cell and created on first write or
first reference from a formula.
"""

from __future__ import annotations

from pathlib import Path
from typing import IO, Any, BinaryIO, Callable, Iterator

import polars as pl

from gridcalc.address import FIRST_COL, LAST_COL, CellAddress
from gridcalc.cell import Cell
from gridcalc.formulas.parser import FormulaParser

DEFAULT_PRECISION = 6

UpdateCallback = Callable[[str, Cell], None]


def _as_address(addr: str | CellAddress) -> CellAddress:
    if isinstance(addr, CellAddress):
        return addr
    return CellAddress.parse(addr)


class Sheet:
    """Owns every materialized cell and answers address queries.

    Parameters
    ----------
    precision : int
        Decimal places used when rendering numbers for display.
    parser : FormulaParser | None
        Formula parser to use; a fresh one is built if omitted.
    on_cell_updated : callable | None
        Called as ``on_cell_updated(address, cell)`` for every cell visited
        by a recalculation cascade.
    """

    def __init__(
        self,
        *,
        precision: int = DEFAULT_PRECISION,
        parser: FormulaParser | None = None,
        on_cell_updated: UpdateCallback | None = None,
    ) -> None:
        self._cols: dict[str, dict[int, Cell]] = {}
        self.precision = precision
        self.parser = parser or FormulaParser()
        self.on_cell_updated = on_cell_updated

    # ------------------------------------------------------------------
    # Cell storage (used by Cell)
    # ------------------------------------------------------------------

    def _cell_at(self, addr: CellAddress) -> Cell | None:
        rows = self._cols.get(addr.col)
        if rows is None:
            return None
        return rows.get(addr.row)

    def _cell_or_new(self, addr: CellAddress) -> Cell:
        rows = self._cols.setdefault(addr.col, {})
        cell = rows.get(addr.row)
        if cell is None:
            cell = Cell(addr, self)
            rows[addr.row] = cell
        return cell

    def _discard(self, cell: Cell) -> None:
        rows = self._cols.get(cell.address.col)
        if rows is None or rows.get(cell.address.row) is not cell:
            return
        del rows[cell.address.row]
        if not rows:
            del self._cols[cell.address.col]

    def _notify(self, cell: Cell) -> None:
        if self.on_cell_updated is not None:
            self.on_cell_updated(str(cell.address), cell)

    def format_number(self, value: float) -> str:
        return f"{value:.{self.precision}f}"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return sum(len(rows) for rows in self._cols.values())

    def __iter__(self) -> Iterator[Cell]:
        for rows in self._cols.values():
            yield from rows.values()

    def __contains__(self, addr: object) -> bool:
        if not isinstance(addr, (str, CellAddress)):
            return False
        return self._cell_at(_as_address(addr)) is not None

    def cell_at(self, addr: str | CellAddress) -> Cell | None:
        """Return the materialized cell at *addr*, or ``None``."""
        return self._cell_at(_as_address(addr))

    def set_content(self, addr: str | CellAddress, content: str) -> None:
        """Set the content of one cell and recalculate its dependents.

        Raises:
            InvalidAddressError: If *addr* is not a valid address.
        """
        a = _as_address(addr)
        if content == "" and self._cell_at(a) is None:
            return
        self._cell_or_new(a).set_content(content)

    def value_at(self, addr: str | CellAddress) -> float:
        """Numeric value at *addr*; empty cells are 0.

        Raises:
            InvalidAddressError: Bad address.
            NotNumericError: The cell holds text.
            EvaluationError: The cell's formula failed.
        """
        cell = self._cell_at(_as_address(addr))
        if cell is None:
            return 0.0
        return cell.value()

    def content_at(self, addr: str | CellAddress) -> str:
        """Display text at *addr*; empty cells are ``""``."""
        cell = self._cell_at(_as_address(addr))
        if cell is None:
            return ""
        return cell.display_content()

    def edit_at(self, addr: str | CellAddress) -> str:
        """Editable text at *addr* (formula source for formulas)."""
        cell = self._cell_at(_as_address(addr))
        if cell is None:
            return ""
        return cell.edit_content()

    def bounds(self) -> CellAddress:
        """Bottom-right corner covering every materialized cell.

        Column and row maxima are taken independently, so the corner itself
        may be empty.  An empty sheet reports ``A1``.
        """
        max_col = CellAddress(FIRST_COL, 1)
        max_row = 1
        for col, rows in self._cols.items():
            candidate = CellAddress(col, 1)
            if max_col.less_col(candidate):
                max_col = candidate
            if rows:
                max_row = max(max_row, max(rows))
        return max_col.with_row(max_row)

    def enumerate(
        self, start: str | CellAddress, end: str | CellAddress
    ) -> Iterator[tuple[CellAddress, Cell]]:
        """Yield ``(address, cell)`` for materialized cells in a closed rectangle.

        Rows are visited top to bottom and, within a row, columns left to
        right.
        """
        s = _as_address(start)
        e = _as_address(end)
        cols = sorted(
            (c for c in self._cols if s.leq_col(CellAddress(c, 1)) and CellAddress(c, 1).leq_col(e)),
            key=lambda c: (len(c), c),
        )
        rows = sorted({r for c in cols for r in self._cols[c] if s.row <= r <= e.row})
        for row in rows:
            for col in cols:
                addr = CellAddress(col, row)
                cell = self._cell_at(addr)
                if cell is not None:
                    yield addr, cell

    # ------------------------------------------------------------------
    # Tabular views
    # ------------------------------------------------------------------

    def column_span(self, start: CellAddress, end: CellAddress) -> list[str]:
        """Column letters from *start* to *end* inclusive."""
        if end.less_col(start):
            return []
        cols = [start.col]
        addr = start
        while addr.col != end.col and addr.col != LAST_COL:
            addr = addr.next_col()
            cols.append(addr.col)
        return cols

    def to_frame(
        self,
        start: str | CellAddress | None = None,
        end: str | CellAddress | None = None,
        *,
        edit: bool = False,
    ) -> pl.DataFrame:
        """Render a range as a DataFrame of strings.

        Args:
            start: Top-left corner (default ``A1``).
            end: Bottom-right corner (default :meth:`bounds`).
            edit: Show edit content (formula source) instead of values.

        Returns:
            A frame with a ``row`` column followed by one column per sheet
            column in the range.
        """
        s = _as_address(start) if start is not None else CellAddress(FIRST_COL, 1)
        e = _as_address(end) if end is not None else self.bounds()
        cols = self.column_span(s, e)
        rows = list(range(s.row, e.row + 1))

        data: dict[str, list[Any]] = {"row": rows}
        for col in cols:
            values = []
            for row in rows:
                cell = self._cell_at(CellAddress(col, row))
                if cell is None:
                    values.append("")
                elif edit:
                    values.append(cell.edit_content())
                else:
                    values.append(cell.display_content())
            data[col] = values

        schema = {"row": pl.Int64, **{col: pl.Utf8 for col in cols}}
        return pl.DataFrame(data, schema=schema)

    def write_csv(self, target: str | Path | IO[Any], *, edit: bool = False) -> None:
        """Write ``A1 .. bounds()`` as CSV with a header row."""
        self.to_frame(edit=edit).write_csv(target)

    # ------------------------------------------------------------------
    # Line protocol shortcuts
    # ------------------------------------------------------------------

    def write_range(self, start: str | CellAddress, end: str | CellAddress, stream: BinaryIO) -> int:
        """Export populated cells of a range as protocol records."""
        from gridcalc.protocol import write_range

        return write_range(self, _as_address(start), _as_address(end), stream)

    def read(self, stream: BinaryIO, *, max_length: int | None = None) -> bool:
        """Read and apply one protocol record.  Returns ``False`` at end of stream."""
        from gridcalc.protocol import MAX_CONTENT_LENGTH, read_record

        limit = MAX_CONTENT_LENGTH if max_length is None else max_length
        record = read_record(stream, max_length=limit)
        if record is None:
            return False
        addr, content = record
        self.set_content(addr, content)
        return True
