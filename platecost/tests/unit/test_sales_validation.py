from __future__ import annotations

from platecost.services.sales_import import (
    MAX_ROWS,
    is_valid_date,
    sanitize_cell,
    validate_file_size,
    validate_import_rows,
)


def _row(date="2026-01-05", dish="Biryani", qty="3") -> dict:
    return {"Date": date, "Dish": dish, "Qty": qty}


def test_file_size_limit() -> None:
    assert validate_file_size(10 * 1024 * 1024) is None
    assert validate_file_size(10 * 1024 * 1024 + 1) is not None


def test_empty_import_is_invalid() -> None:
    result = validate_import_rows([], "Date", "Dish", "Qty")

    assert result.valid is False
    assert result.errors


def test_too_many_rows_is_invalid() -> None:
    rows = [_row()] * (MAX_ROWS + 1)
    result = validate_import_rows(rows, "Date", "Dish", "Qty")

    assert result.valid is False
    assert result.sanitized_rows == []


def test_missing_columns_are_reported_individually() -> None:
    result = validate_import_rows([_row()], "Day", "Dish", "Amount")

    assert result.valid is False
    assert len(result.errors) == 2


def test_formula_cells_are_neutralized() -> None:
    assert sanitize_cell("=HYPERLINK(\"x\")") == "'=HYPERLINK(\"x\")"
    assert sanitize_cell("@SUM(A1)") == "'@SUM(A1)"
    assert sanitize_cell("  plain  ") == "plain"
    assert sanitize_cell(None) == ""

    result = validate_import_rows([_row(dish="=cmd|' /C calc'!A0")], "Date", "Dish", "Qty")
    assert result.sanitized_rows[0]["Dish"].startswith("'=")


def test_rows_without_dish_are_skipped_with_warning() -> None:
    result = validate_import_rows([_row(), _row(dish="  ")], "Date", "Dish", "Qty")

    assert result.valid is True
    assert len(result.sanitized_rows) == 1
    assert any("without a dish name" in warning for warning in result.warnings)


def test_negative_and_non_numeric_quantities_reset_to_zero() -> None:
    result = validate_import_rows(
        [_row(qty="-2"), _row(dish="Tea", qty="abc")], "Date", "Dish", "Qty"
    )

    assert [row["Qty"] for row in result.sanitized_rows] == [0, 0]
    assert any("set to 0" in warning for warning in result.warnings)


def test_invalid_dates_and_duplicates_are_warnings_only() -> None:
    rows = [_row(date="not-a-date"), _row(), _row()]
    result = validate_import_rows(rows, "Date", "Dish", "Qty")

    assert result.valid is True
    assert len(result.sanitized_rows) == 3
    assert any("invalid date" in warning for warning in result.warnings)
    assert any("duplicate" in warning for warning in result.warnings)


def test_date_formats() -> None:
    assert is_valid_date("2026-01-05") is True
    assert is_valid_date("2026-01-05T10:00:00") is True
    assert is_valid_date("2026-13-40") is False
    assert is_valid_date("5/1/2026") is True
    assert is_valid_date("45000") is True
    assert is_valid_date("12") is False
    assert is_valid_date("") is False
