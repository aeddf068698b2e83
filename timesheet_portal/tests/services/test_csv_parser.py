"""Tests for CSV reading and header resolution."""

import pytest

from timesheet_portal.utils.csv_parser import (
    BOM,
    detect_delimiter,
    generate_csv_content,
    get_field_value,
    normalize_header,
    parse_iso_date,
    parse_time,
    read_csv_rows,
    reshape_date,
)


# =============================================================================
# Header Normalization Tests
# =============================================================================

class TestNormalizeHeader:
    """Test cases for header normalization."""

    @pytest.mark.parametrize(
        "header",
        ["Employee ID", "Project Code", "Date", "Hours", "  Stage ID ", "Is Active", ""],
    )
    def test_bom_insensitive(self, header):
        assert normalize_header(BOM + header) == normalize_header(header)

    def test_strips_whitespace(self):
        assert normalize_header("  Name\t") == "Name"

    def test_only_one_bom_removed(self):
        assert normalize_header(BOM + BOM + "Name") == BOM + "Name"


# =============================================================================
# Field Resolution Tests
# =============================================================================

class TestGetFieldValue:
    """Test cases for logical field lookup."""

    def test_exact_key(self):
        assert get_field_value({"Employee ID": "EMP001"}, "Employee ID") == "EMP001"

    def test_bom_prefixed_key(self):
        row = {BOM + "Employee ID": "EMP001", "Name": "Alice"}
        assert get_field_value(row, "Employee ID") == "EMP001"

    def test_padded_key(self):
        assert get_field_value({" Hours ": "8"}, "Hours") == "8"

    def test_case_differences(self):
        assert get_field_value({"project code": "PROJ001"}, "Project Code") == "PROJ001"

    def test_bom_and_padding_together(self):
        assert get_field_value({BOM + " Date": "2024-01-15"}, "Date") == "2024-01-15"

    def test_missing_field_is_none(self):
        assert get_field_value({"Name": "Alice"}, "Email") is None

    def test_empty_cell_is_empty_string(self):
        assert get_field_value({"Position": ""}, "Position") == ""

    def test_short_row_is_none(self):
        # DictReader pads missing trailing cells with None
        assert get_field_value({"Name": "Alice", "Email": None}, "Email") is None


# =============================================================================
# Reading Tests
# =============================================================================

class TestReadCsvRows:
    """Test cases for decoding and splitting uploads."""

    def test_bom_file_resolves_first_column(self):
        content = (BOM + "Employee ID,Name\nEMP001,Alice\n").encode("utf-8")

        rows = read_csv_rows(content)

        assert len(rows) == 1
        assert get_field_value(rows[0], "Employee ID") == "EMP001"

    def test_blank_lines_skipped(self):
        content = b"Employee ID,Name\nEMP001,Alice\n\n,\nEMP002,Ben\n"

        rows = read_csv_rows(content)

        assert [get_field_value(r, "Employee ID") for r in rows] == ["EMP001", "EMP002"]

    def test_latin1_fallback(self):
        content = "Employee ID,Name\nEMP001,Jos\xe9\n".encode("latin-1")

        rows = read_csv_rows(content)

        assert get_field_value(rows[0], "Name") == "Jos\xe9"

    def test_semicolon_delimiter(self):
        content = b"Employee ID;Name\nEMP001;Alice\n"

        rows = read_csv_rows(content)

        assert get_field_value(rows[0], "Name") == "Alice"

    def test_detect_delimiter_defaults_to_comma(self):
        assert detect_delimiter("Name") == ","
        assert detect_delimiter("") == ","


# =============================================================================
# Value Helper Tests
# =============================================================================

class TestValueHelpers:
    """Test cases for date and time helpers."""

    def test_reshape_day_month_year(self):
        assert reshape_date("5/3/2024") == "2024-03-05"
        assert reshape_date("15/12/2024") == "2024-12-15"

    def test_reshape_leaves_other_text(self):
        assert reshape_date("2024-03-05") == "2024-03-05"
        assert reshape_date("March 5") == "March 5"

    def test_parse_iso_date_rejects_impossible_dates(self):
        assert parse_iso_date("2024-02-30") is None
        assert parse_iso_date("2024-2-3") is None
        assert parse_iso_date("2024-02-29").isoformat() == "2024-02-29"

    def test_parse_time(self):
        assert parse_time("09:30").hour == 9
        assert parse_time("9:30").minute == 30
        assert parse_time("24:00") is None
        assert parse_time("09:60") is None
        assert parse_time("0930") is None


# =============================================================================
# Writing Tests
# =============================================================================

class TestGenerateCsvContent:
    """Test cases for CSV generation."""

    def test_header_and_values(self):
        content = generate_csv_content(
            [{"Name": "Alice", "Is Active": True, "Position": None}],
            ["Name", "Is Active", "Position"],
        )

        lines = content.decode("utf-8").splitlines()
        assert lines == ["Name,Is Active,Position", "Alice,true,"]

    def test_without_headers(self):
        content = generate_csv_content([{"Name": "Ben"}], ["Name"], include_headers=False)

        assert content.decode("utf-8").splitlines() == ["Ben"]
