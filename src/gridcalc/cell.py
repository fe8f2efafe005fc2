"""A single sheet cell: content classification, dependency edges and the
recalculation cascade.

Edges are kept symmetric: ``a in b.upstream`` exactly when
``b in a.downstream``.  A transient (empty) cell stays in its sheet only
while some formula still references it.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterator

from gridcalc.address import CellAddress
from gridcalc.errors import (
    CyclicalDependencyError,
    EvaluationError,
    FormulaError,
    NotNumericError,
    SheetError,
)
from gridcalc.formulas.evaluator import evaluate
from gridcalc.formulas.expression import Expression, upstream_addresses
from gridcalc.logging.events import CYCLICAL_DEPENDENCY, EventType, emit_warning

if TYPE_CHECKING:
    from gridcalc.sheet import Sheet

logger = logging.getLogger(__name__)


class CellKind(str, Enum):
    transient = "transient"
    number = "number"
    text = "text"
    formula = "formula"


def parse_number(text: str) -> float | None:
    """Return *text* as a float, or ``None`` if it is not a plain literal.

    Surrounding whitespace and digit-group underscores are not accepted.
    """
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


class Cell:
    """Content, cached value and dependency edges of one address.

    Attributes:
        address: Where the cell lives.
        sheet: Owning sheet, used to resolve references and to prune.
        kind: Which variant the cell currently holds.
        source: Text as entered (formula source for formulas).
        number: Literal value, or the last computed formula value.
        expression: Parsed formula, ``None`` if parsing failed.
        error: Cached formula error, ``None`` when the formula is healthy.
        upstream: Cells this formula reads, in reference order.
        downstream: Cells whose formulas read this one.
    """

    def __init__(self, address: CellAddress, sheet: Sheet) -> None:
        self.address = address
        self.sheet = sheet
        self.downstream: list[Cell] = []
        self._recalculating = False
        self._cycle_marked = False
        self._reset()

    def _reset(self) -> None:
        """Back to the transient variant; address, sheet and downstream are kept."""
        self.kind = CellKind.transient
        self.source = ""
        self.number = 0.0
        self.expression: Expression | None = None
        self.error: SheetError | None = None
        self.upstream: list[Cell] = []

    def __repr__(self) -> str:
        return f"Cell({self.address}, {self.kind.value}, {self.source!r})"

    @property
    def is_transient(self) -> bool:
        return self.kind is CellKind.transient

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def set_content(self, content: str) -> None:
        """Replace the cell's content and recalculate everything downstream."""
        self._detach()
        self._reset()

        if content.startswith("="):
            self._set_formula(content)
        elif content:
            number = parse_number(content)
            self.source = content
            if number is None:
                self.kind = CellKind.text
            else:
                self.kind = CellKind.number
                self.number = number

        self._prune_if_unused()
        self.recalculate()

    def _set_formula(self, content: str) -> None:
        self.kind = CellKind.formula
        self.source = content
        try:
            expression = self.sheet.parser.parse(content)
            addrs = upstream_addresses(expression)
        except FormulaError as exc:
            logger.debug("%s: rejected formula %r: %s", self.address, content, exc)
            self.error = exc
            return

        # dict keeps first-seen order and drops repeated references
        upstream = list(dict.fromkeys(self.sheet._cell_or_new(a) for a in addrs))
        for cell in upstream:
            cell.downstream.append(self)
        self.upstream = upstream
        self.expression = expression

    def _detach(self) -> None:
        for cell in self.upstream:
            cell.downstream.remove(self)
            cell._prune_if_unused()
        self.upstream = []

    def _prune_if_unused(self) -> None:
        if self.kind is CellKind.transient and not self.downstream:
            self.sheet._discard(self)

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    def recalculate(self) -> None:
        """Recalculate this cell, then every transitive dependent, depth-first.

        A cell stays flagged as recalculating until its whole downstream
        subtree is done, so reaching a flagged cell again means the path
        has looped.  The loop's members get a cyclical-dependency error,
        each once per pass.  The sheet callback fires as each cell's
        subtree completes.

        Dependents of newly marked members that were already visited in
        this pass saw the old value, so they are cascaded again once the
        walk is done.  Each cell is revisited at most once per call.
        """
        if self._recalculating:
            # Re-entered from an update callback while this cell is mid-cascade.
            _mark_cycle([self])
            return

        revisit: list[Cell] = [self]
        scheduled = {self}
        while revisit:
            revisit.pop(0)._cascade(revisit, scheduled)

    def _cascade(self, revisit: list[Cell], scheduled: set[Cell]) -> None:
        path: list[Cell] = [self]
        pending: list[Iterator[Cell]] = [self._begin()]
        try:
            while path:
                dependent = next(pending[-1], None)
                if dependent is None:
                    pending.pop()
                    path.pop()._finish()
                    continue
                if dependent._recalculating:
                    for member in _mark_cycle(path[path.index(dependent):]):
                        for cell in member.downstream:
                            if not cell._recalculating and cell not in scheduled:
                                scheduled.add(cell)
                                revisit.append(cell)
                    continue
                path.append(dependent)
                pending.append(dependent._begin())
        finally:
            for cell in path:
                cell._recalculating = False
                cell._cycle_marked = False

    def _begin(self) -> Iterator[Cell]:
        """Flag, evaluate, and return an iterator over a snapshot of dependents."""
        self._recalculating = True
        if self.kind is CellKind.formula and self.expression is not None:
            try:
                self.number = evaluate(self.expression, self.sheet)
                self.error = None
            except (FormulaError, NotNumericError) as exc:
                self.error = exc
        return iter(list(self.downstream))

    def _finish(self) -> None:
        try:
            self.sheet._notify(self)
        finally:
            self._recalculating = False
            self._cycle_marked = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def value(self) -> float:
        """Numeric value of the cell.  Transient cells read as 0.

        Raises:
            NotNumericError: The cell holds text.
            EvaluationError: The formula failed; wraps the cached error.
        """
        if self.kind is CellKind.text:
            raise NotNumericError(str(self.address))
        if self.kind is CellKind.formula and self.error is not None:
            raise EvaluationError(str(self.address), self.error)
        return self.number

    def display_content(self) -> str:
        """Read-only rendering: formatted number, text, or ``"<addr>: <error>"``."""
        if self.kind is CellKind.transient:
            return ""
        if self.kind is CellKind.text:
            return self.source
        if self.kind is CellKind.formula and self.error is not None:
            return f"{self.address}: {self.error}"
        return self.sheet.format_number(self.number)

    def edit_content(self) -> str:
        """Text that re-creates the cell when fed back to ``set_content``."""
        return self.source


def _mark_cycle(members: list[Cell]) -> list[Cell]:
    """Mark loop members not yet marked in this pass and return them."""
    fresh = [cell for cell in members if not cell._cycle_marked]
    if not fresh:
        return fresh
    for cell in fresh:
        cell._cycle_marked = True
        if cell.kind is CellKind.formula:
            cell.error = CyclicalDependencyError()

    names = [str(cell.address) for cell in members]
    logger.debug("cycle detected: %s", " -> ".join(names))
    emit_warning(
        EventType.cycle_detected,
        f"Cyclical equations detected: {' -> '.join(names)}",
        {"cycle": names},
        error_code=CYCLICAL_DEPENDENCY,
    )
    return fresh
