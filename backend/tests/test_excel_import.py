from datetime import date, datetime
from io import BytesIO

import pytest
from openpyxl import Workbook

from dailystatus.core.errors import ImportRejectedError
from dailystatus.services.excel_import import (
    RowContext,
    clean_cell,
    fold_rows,
    format_header,
    group_day_entries,
    is_date_header,
    parse_header_date,
    read_workbook_rows,
)

TODAY = date(2024, 6, 10)


def _rows(*rows):
    return list(enumerate(rows, start=2))


def test_context_advance_keeps_previous_pointers():
    ctx = RowContext(team="Alpha", employee="Jane Doe", question="Done")
    nxt = ctx.advance(question="Next")
    assert nxt == RowContext(team="Alpha", employee="Jane Doe", question="Next")
    assert ctx.question == "Done"


def test_team_carries_forward_to_following_rows():
    result = fold_rows(_rows(
        {"Team": "Alpha", "Employee": "Jane Doe", "Question": "Done", "5-May": "Wrote tests"},
        {"Employee": "John Smith", "Question": "Done", "5-May": "Reviewed"},
    ))
    assert [r.team for r in result.records] == ["Alpha", "Alpha"]
    assert [r.employee for r in result.records] == ["Jane Doe", "John Smith"]
    assert result.row_errors == []


def test_row_without_pointers_is_recorded_and_skipped():
    result = fold_rows(_rows(
        {"Team": "Alpha", "Question": "Done", "5-May": "orphan"},
        {"Resources Names": "Jane Doe", "5-May": "Wrote tests"},
    ))
    assert len(result.row_errors) == 1
    assert result.row_errors[0].row == 2
    assert result.row_errors[0].missing_fields == ["Employee"]
    assert len(result.records) == 1
    assert result.records[0].employee == "Jane Doe"
    assert result.records[0].row == 3


def test_no_records_rejects_with_row_errors():
    with pytest.raises(ImportRejectedError) as exc:
        fold_rows(_rows({"Team": "Alpha", "5-May": "x"}))
    assert exc.value.details["row_errors"] == [{"row": 2, "missing_fields": ["Employee", "Question"]}]


def test_placeholders_count_as_empty():
    assert clean_cell("#NAME?") is None
    assert clean_cell("undefined") is None
    assert clean_cell("  ") is None
    assert clean_cell(3.0) == "3"
    result = fold_rows(_rows(
        {"Team": "Alpha", "User": "Jane", "Task": "Done", "5-May": "a"},
        {"Team": "#NAME?", "Task": "Done", "5-May": "undefined", "6-May": "b"},
    ))
    assert [(r.team, r.date_label, r.answer) for r in result.records] == [
        ("Alpha", "5-May", "a"),
        ("Alpha", "6-May", "b"),
    ]


def test_only_date_like_headers_are_date_columns():
    assert is_date_header("5-May")
    assert is_date_header("12 June")
    assert is_date_header("5-May-2024")
    assert not is_date_header("Team")
    assert not is_date_header("Comments")
    assert not is_date_header("2024-05-05")


def test_sick_leave_makes_whole_day_leave():
    result = fold_rows(_rows(
        {"Team": "Alpha", "Employee": "Jane", "Question": "Done", "5-May": "Wrote tests", "6-May": "Shipped"},
        {"Question": "Blockers", "5-May": "SICK LEAVE", "6-May": "None"},
    ))
    entries = {e.date_label: e for e in group_day_entries(result.records)}
    assert entries["5-May"].is_leave is True
    assert entries["5-May"].leave_reason == "SICK LEAVE"
    assert entries["5-May"].responses == []
    assert entries["6-May"].is_leave is False
    assert entries["6-May"].responses == [("Done", "Shipped"), ("Blockers", "None")]


def test_grouping_splits_by_team_employee_and_date():
    result = fold_rows(_rows(
        {"Team": "Alpha", "Employee": "Jane", "Question": "Done", "5-May": "a"},
        {"Employee": "John", "5-May": "b"},
        {"Team": "Beta", "Employee": "Jane", "5-May": "c"},
    ))
    entries = group_day_entries(result.records)
    assert [(e.team, e.employee) for e in entries] == [("Alpha", "Jane"), ("Alpha", "John"), ("Beta", "Jane")]


def test_parse_header_date_formats():
    assert parse_header_date("5-May", TODAY) == (date(2024, 5, 5), False)
    assert parse_header_date("5-May-2023", TODAY) == (date(2023, 5, 5), False)
    assert parse_header_date("7 September 23", TODAY) == (date(2023, 9, 7), False)
    assert parse_header_date("2024-02-29", TODAY) == (date(2024, 2, 29), False)


def test_parse_header_date_falls_back_to_today():
    assert parse_header_date("31-Feb", TODAY) == (TODAY, True)
    assert parse_header_date("5-Foo", TODAY) == (TODAY, True)
    assert parse_header_date("", TODAY) == (TODAY, True)


def test_format_header_renders_real_dates():
    assert format_header(datetime(2024, 5, 5), 4) == "5-May-2024"
    assert format_header(None, 7) == "Column7"
    assert format_header(" Team ", 1) == "Team"


def _workbook_bytes(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def test_read_workbook_rows_maps_headers_and_skips_empty_rows():
    content = _workbook_bytes([
        ["Team", "Employee", "Question", datetime(2024, 5, 5), "6-May"],
        ["Alpha", "Jane", "Done", "Wrote tests", None],
        [None, None, None, None, None],
        [None, "John", None, None, "Reviewed"],
    ])
    rows = read_workbook_rows(content)
    assert rows == [
        (2, {"Team": "Alpha", "Employee": "Jane", "Question": "Done", "5-May-2024": "Wrote tests"}),
        (4, {"Employee": "John", "6-May": "Reviewed"}),
    ]


def test_read_workbook_rows_rejects_garbage():
    with pytest.raises(ImportRejectedError):
        read_workbook_rows(b"not a spreadsheet")


def test_read_workbook_rows_rejects_header_only_sheet():
    with pytest.raises(ImportRejectedError):
        read_workbook_rows(_workbook_bytes([["Team", "Employee", "Question", "5-May"]]))
