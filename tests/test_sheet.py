"""Tests for cells, sheets and the recalculation cascade."""

from __future__ import annotations

import math

import pytest

from gridcalc.address import CellAddress
from gridcalc.cell import CellKind, parse_number
from gridcalc.errors import (
    CyclicalDependencyError,
    EvaluationError,
    InvalidAddressError,
    NotNumericError,
)
from gridcalc.sheet import Sheet


@pytest.fixture
def sheet():
    return Sheet()


def load(sheet, contents):
    for addr, content in contents:
        sheet.set_content(addr, content)


def assert_edges_symmetric(sheet):
    for cell in sheet:
        for up in cell.upstream:
            assert cell in up.downstream
        for down in cell.downstream:
            assert cell in down.upstream


# ---------------------------------------------------------------------------
# Content kinds
# ---------------------------------------------------------------------------


class TestParseNumber:
    @pytest.mark.parametrize(
        "text,expected",
        [("5", 5.0), ("-2.5", -2.5), ("1e3", 1000.0), ("0", 0.0), (".5", 0.5)],
    )
    def test_numbers(self, text, expected):
        assert parse_number(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", " 5", "5 ", "1_000", "5x", "Total"])
    def test_not_numbers(self, text):
        assert parse_number(text) is None


class TestContentKinds:
    def test_number(self, sheet):
        sheet.set_content("A1", "5")
        assert sheet.cell_at("A1").kind is CellKind.number
        assert sheet.value_at("A1") == 5.0
        assert sheet.content_at("A1") == "5.000000"
        assert sheet.edit_at("A1") == "5"

    def test_number_edit_keeps_literal(self, sheet):
        sheet.set_content("A1", "1e3")
        assert sheet.content_at("A1") == "1000.000000"
        assert sheet.edit_at("A1") == "1e3"

    def test_text(self, sheet):
        sheet.set_content("A1", "Hello")
        assert sheet.cell_at("A1").kind is CellKind.text
        assert sheet.content_at("A1") == "Hello"
        assert sheet.edit_at("A1") == "Hello"
        with pytest.raises(NotNumericError, match="Cannot get numeric value from A1"):
            sheet.value_at("A1")

    def test_formula(self, sheet):
        load(sheet, [("A2", "5"), ("A3", "6"), ("A1", "=A2+A3")])
        assert sheet.cell_at("A1").kind is CellKind.formula
        assert sheet.value_at("A1") == 11.0
        assert sheet.content_at("A1") == "11.000000"
        assert sheet.edit_at("A1") == "=A2+A3"

    def test_empty_sheet_reads(self, sheet):
        assert sheet.value_at("Q9") == 0.0
        assert sheet.content_at("Q9") == ""
        assert sheet.edit_at("Q9") == ""
        assert sheet.cell_at("Q9") is None
        assert len(sheet) == 0

    def test_precision(self):
        sheet = Sheet(precision=2)
        sheet.set_content("A1", "3.14159")
        assert sheet.content_at("A1") == "3.14"

    def test_infinite_display(self, sheet):
        load(sheet, [("B1", "1"), ("A1", "=B1/C1")])
        assert sheet.value_at("A1") == math.inf
        assert sheet.content_at("A1") == "inf"

    def test_lowercase_addresses(self, sheet):
        sheet.set_content("b2", "4")
        sheet.set_content("A1", "=b2*B2")
        assert sheet.value_at("a1") == 16.0
        assert "B2" in sheet

    def test_address_objects_accepted(self, sheet):
        sheet.set_content(CellAddress("C", 3), "7")
        assert sheet.value_at("C3") == 7.0

    @pytest.mark.parametrize("addr", ["AAA1", "1A", "A0", ""])
    def test_invalid_address(self, sheet, addr):
        with pytest.raises(InvalidAddressError):
            sheet.set_content(addr, "1")
        with pytest.raises(InvalidAddressError):
            sheet.value_at(addr)
        assert len(sheet) == 0


# ---------------------------------------------------------------------------
# Recalculation
# ---------------------------------------------------------------------------


class TestRecalculation:
    def test_dependents_update(self, sheet):
        load(
            sheet,
            [
                ("A1", "=A2+A3"),
                ("A2", "=B2+B3"),
                ("A3", "=B3+B4"),
                ("B2", "1"),
                ("B3", "2"),
                ("B4", "3"),
            ],
        )
        assert sheet.value_at("A1") == 8.0

        load(sheet, [("B2", "Hello"), ("B3", "World"), ("A2", "1")])
        # A3 = B3 + B4 now fails because B3 is text
        with pytest.raises(EvaluationError):
            sheet.value_at("A1")

        sheet.set_content("B3", "2")
        assert sheet.value_at("A1") == 1.0 + 2.0 + 3.0

    def test_text_upstream_error(self, sheet):
        load(sheet, [("A2", "5"), ("A3", "Hello"), ("A1", "=A2+A3")])
        with pytest.raises(EvaluationError) as exc_info:
            sheet.value_at("A1")
        assert isinstance(exc_info.value.cause, NotNumericError)
        assert str(exc_info.value) == "A1: Cannot get numeric value from A3"
        assert sheet.content_at("A1") == "A1: Cannot get numeric value from A3"

    def test_errors_propagate_through_chain(self, sheet):
        load(sheet, [("A5", "x"), ("A4", "=A5"), ("A3", "=A4"), ("A2", "=A3"), ("A1", "=A2")])
        with pytest.raises(EvaluationError):
            sheet.value_at("A1")
        assert sheet.content_at("A2") == "A2: A3: A4: Cannot get numeric value from A5"

        sheet.set_content("A5", "4")
        assert sheet.value_at("A1") == 4.0

    def test_diamond(self, sheet):
        load(sheet, [("A1", "=B1+C1"), ("B1", "=D1"), ("C1", "=D1*2"), ("D1", "2")])
        assert sheet.value_at("A1") == 6.0
        sheet.set_content("D1", "5")
        assert sheet.value_at("A1") == 15.0

    def test_duplicate_reference_single_edge(self, sheet):
        load(sheet, [("B1", "3"), ("A1", "=B1+B1*B1")])
        assert sheet.value_at("A1") == 12.0
        b1 = sheet.cell_at("B1")
        a1 = sheet.cell_at("A1")
        assert b1.downstream == [a1]
        assert a1.upstream == [b1]

    def test_replace_formula_moves_edges(self, sheet):
        load(sheet, [("B1", "1"), ("C1", "2"), ("A1", "=B1")])
        sheet.set_content("A1", "=C1")
        assert sheet.cell_at("B1").downstream == []
        assert sheet.cell_at("C1").downstream == [sheet.cell_at("A1")]
        assert sheet.value_at("A1") == 2.0
        assert_edges_symmetric(sheet)

    def test_long_chain(self, sheet):
        n = 1500
        for row in range(2, n + 1):
            sheet.set_content(f"A{row}", f"=A{row - 1}")
        sheet.set_content("A1", "1")
        assert sheet.value_at(f"A{n}") == 1.0
        sheet.set_content("A1", "2")
        assert sheet.value_at(f"A{n}") == 2.0

    def test_longest_formulas_evaluate(self, sheet):
        chain = "=" + "+".join(["B1"] * 1300)
        nested = "=" + "B1+(" * 800 + "B1" + ")" * 800
        assert len(chain) <= 4096 and len(nested) <= 4096
        load(sheet, [("A1", chain), ("A2", nested), ("B1", "1")])
        assert sheet.value_at("A1") == 1300.0
        assert sheet.value_at("A2") == 801.0
        assert sheet.content_at("A1") == "1300.000000"

    def test_formula_reading_empty_cell(self, sheet):
        sheet.set_content("A1", "=B1+1")
        assert sheet.value_at("A1") == 1.0
        sheet.set_content("B1", "41")
        assert sheet.value_at("A1") == 42.0


# ---------------------------------------------------------------------------
# Formula errors contained in cells
# ---------------------------------------------------------------------------


class TestFormulaErrors:
    def test_parse_error_cached(self, sheet):
        sheet.set_content("A1", "=B1+")
        assert sheet.content_at("A1").startswith("A1: Formula parse error")
        assert sheet.edit_at("A1") == "=B1+"
        with pytest.raises(EvaluationError):
            sheet.value_at("A1")
        # No edges were created for a formula that did not parse
        assert "B1" not in sheet

    def test_parse_error_seen_by_dependents(self, sheet):
        load(sheet, [("A1", "=A2 + 1"), ("B1", "=A1")])
        assert sheet.content_at("B1").startswith("B1: A1: Formula parse error")

    def test_unresolved_reference(self, sheet):
        sheet.set_content("A1", "=B1+AAA1")
        assert sheet.content_at("A1").startswith("A1: Unresolved reference 'AAA1'")
        assert len(sheet) == 1

    def test_repair(self, sheet):
        load(sheet, [("B1", "5"), ("A1", "=B1+")])
        sheet.set_content("A1", "=B1")
        assert sheet.value_at("A1") == 5.0


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


class TestCycles:
    def test_three_cycle(self, sheet):
        load(sheet, [("A1", "=A2"), ("A2", "=A3"), ("A3", "=A1")])
        for addr in ("A1", "A2", "A3"):
            assert sheet.content_at(addr) == f"{addr}: Cyclical equations detected."
            with pytest.raises(EvaluationError) as exc_info:
                sheet.value_at(addr)
            assert isinstance(exc_info.value.cause, CyclicalDependencyError)

    def test_self_reference(self, sheet):
        sheet.set_content("A1", "=A1+1")
        assert sheet.content_at("A1") == "A1: Cyclical equations detected."

    def test_cycle_broken(self, sheet):
        load(sheet, [("A1", "=A2"), ("A2", "=A3"), ("A3", "=A1")])
        sheet.set_content("A3", "7")
        assert sheet.value_at("A1") == 7.0
        assert sheet.value_at("A2") == 7.0
        assert sheet.content_at("A3") == "7.000000"

    def test_cells_feeding_a_cycle_are_not_members(self, sheet):
        load(sheet, [("A1", "=A2+C1"), ("A2", "=A1"), ("C1", "=E1")])
        assert sheet.content_at("C1") == "0.000000"
        assert sheet.content_at("A1") == "A1: Cyclical equations detected."
        assert sheet.content_at("A2") == "A2: Cyclical equations detected."

    def test_cells_downstream_of_a_cycle(self, sheet):
        load(sheet, [("A1", "=A2"), ("A2", "=A1"), ("B1", "=A1")])
        assert sheet.content_at("B1") == "B1: A1: Cyclical equations detected."

    def test_dependent_visited_before_loop_closes(self, sheet):
        load(sheet, [("C1", "=A1"), ("A1", "=B1"), ("B1", "=A1")])
        assert sheet.content_at("A1") == "A1: Cyclical equations detected."
        assert sheet.content_at("B1") == "B1: Cyclical equations detected."
        assert sheet.content_at("C1") == "C1: A1: Cyclical equations detected."
        with pytest.raises(EvaluationError):
            sheet.value_at("C1")

        sheet.set_content("B1", "3")
        assert sheet.value_at("C1") == 3.0

    def test_chain_downstream_of_late_marked_loop(self, sheet):
        load(sheet, [("D1", "=C1*2"), ("C1", "=A1"), ("A1", "=B1"), ("B1", "=A1")])
        assert sheet.content_at("D1") == "D1: C1: A1: Cyclical equations detected."

    def test_edges_stay_symmetric(self, sheet):
        load(sheet, [("A1", "=A2+B1"), ("A2", "=A3"), ("A3", "=A1"), ("B1", "2")])
        assert_edges_symmetric(sheet)
        sheet.set_content("A2", "")
        assert_edges_symmetric(sheet)


# ---------------------------------------------------------------------------
# Transient cells
# ---------------------------------------------------------------------------


class TestTransient:
    def test_pruning(self, sheet):
        load(
            sheet,
            [
                ("A1", "Count"),
                ("B1", "1"),
                ("C1", "2"),
                ("D1", "3"),
                ("E1", "4"),
                ("F1", "5"),
                ("F2", "Total"),
                ("F3", "=B1+C1+D1+E1"),
            ],
        )
        sheet.set_content("F1", "")
        assert sheet.cell_at("F1") is None

        sheet.set_content("B1", "")
        b1 = sheet.cell_at("B1")
        assert b1 is not None
        assert b1.is_transient
        assert sheet.value_at("F3") == 9.0

        sheet.set_content("F3", "")
        assert sheet.cell_at("B1") is None
        assert sheet.cell_at("F3") is None
        assert sheet.cell_at("C1") is not None

    def test_referenced_cell_materialized(self, sheet):
        sheet.set_content("A1", "=Q9")
        q9 = sheet.cell_at("Q9")
        assert q9 is not None
        assert q9.is_transient
        assert sheet.content_at("Q9") == ""
        assert sheet.value_at("Q9") == 0.0

    def test_clear_missing_is_noop(self, sheet):
        calls = []
        sheet.on_cell_updated = lambda addr, cell: calls.append(addr)
        sheet.set_content("B7", "")
        assert len(sheet) == 0
        assert calls == []

    def test_clearing_formula_prunes_transient_inputs(self, sheet):
        sheet.set_content("A1", "=B1+C1")
        assert len(sheet) == 3
        sheet.set_content("A1", "")
        assert len(sheet) == 0


# ---------------------------------------------------------------------------
# Bounds and enumeration
# ---------------------------------------------------------------------------


class TestBounds:
    def test_empty(self, sheet):
        assert sheet.bounds() == CellAddress("A", 1)

    def test_independent_maxima(self, sheet):
        load(sheet, [("A1", "1"), ("B2", "2"), ("C3", "3")])
        assert sheet.bounds() == CellAddress("C", 3)
        sheet.set_content("FT1", "4")
        assert sheet.bounds() == CellAddress("FT", 3)

    def test_max_row(self, sheet):
        load(sheet, [("A1", "1"), ("B23", "2"), ("C3", "3")])
        assert sheet.bounds().row == 23
        sheet.set_content("ZZ2991", "x")
        assert sheet.bounds() == CellAddress("ZZ", 2991)

    def test_two_letter_beats_one_letter(self, sheet):
        load(sheet, [("Z1", "1"), ("AA1", "1")])
        assert sheet.bounds().col == "AA"

    def test_cleared_column_dropped(self, sheet):
        load(sheet, [("A1", "1"), ("ZZ5", "1")])
        sheet.set_content("ZZ5", "")
        assert sheet.bounds() == CellAddress("A", 1)

    def test_transient_cells_count(self, sheet):
        sheet.set_content("A1", "=D4")
        assert sheet.bounds() == CellAddress("D", 4)


class TestEnumerate:
    def test_row_major_order(self, sheet):
        load(sheet, [("B1", "1"), ("A2", "2"), ("AA1", "3"), ("A1", "4"), ("C2", "5")])
        got = [str(addr) for addr, _ in sheet.enumerate("A1", "AA2")]
        assert got == ["A1", "B1", "AA1", "A2", "C2"]

    def test_closed_rectangle(self, sheet):
        load(sheet, [("A1", "1"), ("B2", "2"), ("C3", "3"), ("D4", "4")])
        got = [str(addr) for addr, _ in sheet.enumerate("B2", "C3")]
        assert got == ["B2", "C3"]

    def test_yields_cells(self, sheet):
        sheet.set_content("A1", "5")
        [(addr, cell)] = list(sheet.enumerate("A1", "A1"))
        assert addr == CellAddress("A", 1)
        assert cell is sheet.cell_at("A1")

    def test_inverted_range_is_empty(self, sheet):
        sheet.set_content("B2", "1")
        assert list(sheet.enumerate("C3", "A1")) == []


# ---------------------------------------------------------------------------
# Update callback
# ---------------------------------------------------------------------------


class TestUpdateCallback:
    def test_edited_cell_reported(self):
        calls = []
        sheet = Sheet(on_cell_updated=lambda addr, cell: calls.append(addr))
        sheet.set_content("A1", "5")
        assert calls == ["A1"]

    def test_dependents_reported_after_their_subtree(self):
        calls = []
        sheet = Sheet()
        load(sheet, [("A1", "=A2"), ("A2", "=A3"), ("A3", "1")])
        sheet.on_cell_updated = lambda addr, cell: calls.append((addr, cell.display_content()))
        sheet.set_content("A3", "2")
        assert calls == [
            ("A1", "2.000000"),
            ("A2", "2.000000"),
            ("A3", "2.000000"),
        ]

    def test_cycle_members_reported(self):
        calls = []
        sheet = Sheet(on_cell_updated=lambda addr, cell: calls.append(addr))
        load(sheet, [("A1", "=A2"), ("A2", "=A1")])
        assert set(calls) >= {"A1", "A2"}

    def test_cleared_cell_reported(self):
        calls = []
        sheet = Sheet()
        load(sheet, [("B1", "1"), ("A1", "=B1")])
        sheet.on_cell_updated = lambda addr, cell: calls.append(addr)
        sheet.set_content("B1", "")
        assert calls == ["A1", "B1"]
        assert sheet.value_at("A1") == 0.0


# ---------------------------------------------------------------------------
# Tabular views
# ---------------------------------------------------------------------------


class TestFrame:
    def test_to_frame_values(self, sheet):
        load(sheet, [("A1", "1"), ("B1", "2"), ("A2", "=A1+B1"), ("C3", "x")])
        df = sheet.to_frame()
        assert df.columns == ["row", "A", "B", "C"]
        assert df["row"].to_list() == [1, 2, 3]
        assert df["A"].to_list() == ["1.000000", "3.000000", ""]
        assert df["C"].to_list() == ["", "", "x"]

    def test_to_frame_edit(self, sheet):
        load(sheet, [("A1", "1"), ("A2", "=A1*2")])
        df = sheet.to_frame(edit=True)
        assert df["A"].to_list() == ["1", "=A1*2"]

    def test_to_frame_range(self, sheet):
        load(sheet, [("A1", "1"), ("B2", "2"), ("C3", "3")])
        df = sheet.to_frame("B2", "C3")
        assert df.columns == ["row", "B", "C"]
        assert df.shape == (2, 3)

    def test_write_csv(self, sheet, tmp_path):
        load(sheet, [("A1", "1"), ("B1", "2"), ("A2", "=A1+B1"), ("B2", "x")])
        out = tmp_path / "sheet.csv"
        sheet.write_csv(out)
        lines = out.read_text().splitlines()
        assert lines == ["row,A,B", "1,1.000000,2.000000", "2,3.000000,x"]
