"""Cell formula parsing and evaluation.

Public API::

    from gridcalc.formulas import FormulaParser, evaluate, references
"""

from gridcalc.formulas.evaluator import ValueResolver, evaluate
from gridcalc.formulas.expression import (
    Expression,
    Op,
    references,
    upstream_addresses,
)
from gridcalc.formulas.parser import FormulaParser, parse_formula

__all__ = [
    "Expression",
    "FormulaParser",
    "Op",
    "ValueResolver",
    "evaluate",
    "parse_formula",
    "references",
    "upstream_addresses",
]
