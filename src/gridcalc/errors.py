"""Error types for addressing, formulas, evaluation and the line protocol."""

from __future__ import annotations


class SheetError(Exception):
    """Base class for all gridcalc errors."""


class InvalidAddressError(SheetError):
    """Malformed or out-of-range cell address.

    Attributes:
        address: The offending address text.
        reason: Optional detail (e.g. column too big).
    """

    def __init__(self, address: str, reason: str | None = None) -> None:
        self.address = address
        self.reason = reason
        msg = f"Invalid cell address {address!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ProtocolError(SheetError):
    """Malformed record on the ingest line protocol."""


class NotNumericError(SheetError):
    """Numeric access on a cell holding text.

    Attributes:
        address: Address of the text cell.
    """

    def __init__(self, address: str) -> None:
        self.address = address
        super().__init__(f"Cannot get numeric value from {address}")


class StructuralError(SheetError):
    """Malformed expression tree.  Never produced by a working parser."""


class FormulaError(SheetError):
    """Base class for errors contained at the cell level."""


class FormulaParseError(FormulaError):
    """Syntax error in a formula.

    Attributes:
        position: 1-based column where the error was detected.
    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        full = f"Formula parse error: {message}"
        if position is not None:
            full += f" (at position {position})"
        super().__init__(full)


class UnresolvedReferenceError(FormulaError):
    """Formula identifier that is not a valid cell address.

    Attributes:
        ref_name: The identifier as written in the formula.
    """

    def __init__(self, ref_name: str, reason: str | None = None) -> None:
        self.ref_name = ref_name
        msg = f"Unresolved reference {ref_name!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CyclicalDependencyError(FormulaError):
    """The formula participates in a reference cycle."""

    def __init__(self) -> None:
        super().__init__("Cyclical equations detected.")


class EvaluationError(FormulaError):
    """Wraps the cached error of a formula cell read by another formula.

    Attributes:
        address: Address of the failed cell.
        cause: The error cached on that cell.
    """

    def __init__(self, address: str, cause: Exception) -> None:
        self.address = address
        self.cause = cause
        super().__init__(f"{address}: {cause}")
