"""Tree-walking evaluator for parsed formula expressions.

Arithmetic follows IEEE-754 double precision: overflow yields infinity,
NaN propagates, and division by zero yields ``inf``/``-inf``/``nan`` rather
than raising.
"""

from __future__ import annotations

import math
from typing import Protocol

from gridcalc.errors import StructuralError
from gridcalc.formulas.expression import Expression, Op


class ValueResolver(Protocol):
    """Anything that can turn an address string into a number."""

    def value_at(self, addr: str) -> float:
        """Return the numeric value at *addr* (may raise a SheetError)."""
        ...


def evaluate(expr: Expression, resolver: ValueResolver) -> float:
    """Evaluate *expr*, reading referenced cells through *resolver*.

    Operands are evaluated left before right.  The walk keeps its own
    stack, so tree depth is not limited by the interpreter.

    Raises:
        StructuralError: An operator node is missing a child.
        SheetError: Whatever the resolver raises for a referenced cell.
    """
    values: list[float] = []
    # (node, children_done)
    stack: list[tuple[Expression, bool]] = [(expr, False)]
    while stack:
        node, children_done = stack.pop()
        if node.op is Op.ref:
            if node.ref is None:
                raise StructuralError("Bad expression: reference without a name")
            values.append(float(resolver.value_at(node.ref)))
            continue
        if not children_done:
            if node.left is None or node.right is None:
                raise StructuralError(f"Bad expression: {node.op.value} node is missing a child")
            stack.append((node, True))
            stack.append((node.right, False))
            stack.append((node.left, False))
            continue
        right = values.pop()
        left = values.pop()
        values.append(_apply(node.op, left, right))
    return values.pop()


def _apply(op: Op, left: float, right: float) -> float:
    if op is Op.add:
        return left + right
    if op is Op.sub:
        return left - right
    if op is Op.mul:
        return left * right
    if op is Op.div:
        return _divide(left, right)
    raise StructuralError(f"Unknown operator: {op!r}")


def _divide(left: float, right: float) -> float:
    try:
        return left / right
    except ZeroDivisionError:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
