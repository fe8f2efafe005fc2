"""gridcalc -- reactive in-memory spreadsheet engine.

Public API::

    from gridcalc import Sheet, CellAddress
"""

__version__ = "0.1.0"

from gridcalc.address import CellAddress, parse_range  # noqa: E402
from gridcalc.cell import Cell, CellKind  # noqa: E402
from gridcalc.errors import (  # noqa: E402
    CyclicalDependencyError,
    EvaluationError,
    FormulaError,
    FormulaParseError,
    InvalidAddressError,
    NotNumericError,
    ProtocolError,
    SheetError,
    StructuralError,
    UnresolvedReferenceError,
)
from gridcalc.sheet import Sheet  # noqa: E402

__all__ = [
    "Cell",
    "CellAddress",
    "CellKind",
    "CyclicalDependencyError",
    "EvaluationError",
    "FormulaError",
    "FormulaParseError",
    "InvalidAddressError",
    "NotNumericError",
    "ProtocolError",
    "Sheet",
    "SheetError",
    "StructuralError",
    "UnresolvedReferenceError",
    "__version__",
    "parse_range",
]
