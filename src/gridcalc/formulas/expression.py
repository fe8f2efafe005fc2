"""Immutable expression tree produced by the formula parser."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from gridcalc.address import CellAddress
from gridcalc.errors import InvalidAddressError, UnresolvedReferenceError


class Op(str, Enum):
    ref = "ref"
    add = "add"
    sub = "sub"
    mul = "mul"
    div = "div"


class Expression(NamedTuple):
    """One node of a formula tree.

    A ``ref`` node carries the identifier text in ``ref``; operator nodes
    carry ``left`` and ``right`` children.
    """

    op: Op
    left: Expression | None = None
    right: Expression | None = None
    ref: str | None = None

    @classmethod
    def reference(cls, name: str) -> Expression:
        return cls(Op.ref, ref=name)

    @classmethod
    def binary(cls, op: Op, left: Expression, right: Expression) -> Expression:
        return cls(op, left, right)


def references(expr: Expression) -> list[str]:
    """List identifier strings in pre-order, left before right.

    Duplicates are kept: ``=A1+A1`` yields ``["A1", "A1"]``.
    """
    out: list[str] = []
    stack = [expr]
    while stack:
        node = stack.pop()
        if node.op is Op.ref:
            out.append(node.ref or "")
            continue
        if node.right is not None:
            stack.append(node.right)
        if node.left is not None:
            stack.append(node.left)
    return out


def upstream_addresses(expr: Expression) -> list[CellAddress]:
    """Resolve every referenced identifier into a cell address.

    Raises:
        UnresolvedReferenceError: An identifier is not a valid address.
    """
    addrs: list[CellAddress] = []
    for name in references(expr):
        try:
            addrs.append(CellAddress.parse(name))
        except InvalidAddressError as exc:
            raise UnresolvedReferenceError(name, exc.reason) from exc
    return addrs
