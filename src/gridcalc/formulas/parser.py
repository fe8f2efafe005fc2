"""Lark-based parser for cell formulas.

Supports:
- Cell references written as identifiers (``A1``, ``zz10``)
- ``+ - * /`` with the usual precedence, left-associative
- Parenthesised sub-expressions

Whitespace is not part of the grammar, so ``=A1 + B1`` is a parse error.
Identifiers are any run of letters and digits; whether they name a real
cell is decided later by :func:`~gridcalc.formulas.expression.upstream_addresses`.
"""

from __future__ import annotations

from lark import Lark, Transformer
from lark.exceptions import UnexpectedInput

from gridcalc.errors import FormulaParseError
from gridcalc.formulas.expression import Expression, Op

# LALR(1) grammar.  Precedence (lowest to highest):
#   1. Addition/subtraction: + -
#   2. Multiplication/division: * /
#   3. Atoms: identifier, parenthesised expr
GRAMMAR = r"""
start: "=" expr

?expr: term
    | expr "+" term  -> add
    | expr "-" term  -> sub

?term: factor
    | term "*" factor  -> mul
    | term "/" factor  -> div

?factor: IDENT           -> ref
    | "(" expr ")"

IDENT: /[A-Za-z0-9]+/
"""


class _ExpressionBuilder(Transformer):
    """Turns the parse tree into :class:`Expression` nodes bottom-up."""

    def start(self, children: list[Expression]) -> Expression:
        return children[0]

    def ref(self, children: list) -> Expression:
        return Expression.reference(str(children[0]))

    def add(self, children: list[Expression]) -> Expression:
        return Expression.binary(Op.add, children[0], children[1])

    def sub(self, children: list[Expression]) -> Expression:
        return Expression.binary(Op.sub, children[0], children[1])

    def mul(self, children: list[Expression]) -> Expression:
        return Expression.binary(Op.mul, children[0], children[1])

    def div(self, children: list[Expression]) -> Expression:
        return Expression.binary(Op.div, children[0], children[1])


class FormulaParser:
    """Compiled formula grammar.

    Each :class:`~gridcalc.sheet.Sheet` owns one instance; the compiled
    tables are read-only after construction.
    """

    def __init__(self) -> None:
        self._lark = Lark(
            GRAMMAR,
            parser="lalr",
            start="start",
            transformer=_ExpressionBuilder(),
        )

    def parse(self, text: str) -> Expression:
        """Parse a formula string (must start with ``=``).

        Args:
            text: The formula text, e.g. ``"=A1+B2*(C3-D4)"``.

        Returns:
            The expression tree.

        Raises:
            FormulaParseError: If the formula has invalid syntax.
        """
        if not text.startswith("="):
            raise FormulaParseError("Formula must start with '='", position=1)
        try:
            return self._lark.parse(text)
        except UnexpectedInput as exc:
            pos = getattr(exc, "column", None)
            if not isinstance(pos, int) or pos < 1:
                pos = None
            raise FormulaParseError(_describe(exc, text), position=pos) from exc


def _describe(exc: UnexpectedInput, text: str) -> str:
    """Short human message for a Lark failure (Lark's own text is multi-line)."""
    pos = getattr(exc, "pos_in_stream", None)
    token = getattr(exc, "token", None)
    if token is not None and getattr(token, "type", None) == "$END":
        return "unexpected end of formula"
    if isinstance(pos, int) and 0 <= pos < len(text):
        return f"unexpected character {text[pos]!r}"
    return "unexpected end of formula"


def parse_formula(text: str, parser: FormulaParser | None = None) -> Expression:
    """Parse *text* with *parser*, building a fresh parser if none is given."""
    return (parser or FormulaParser()).parse(text)
