"""
Spreadsheet import: workbook rows -> flat records -> one entry per (team, employee, day).

Input layout is a header row followed by data rows. Team / employee / question
columns are run-length encoded: a value applies to the following rows until a
new value appears in the same column. The remaining headers that look like
"5-May" are date columns and hold one answer per cell.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from typing import Iterable, NamedTuple
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..core.errors import ImportRejectedError

logger = logging.getLogger(__name__)

TEAM_COLUMNS = ("Team", "Team #", "TeamName", "Team Name")
EMPLOYEE_COLUMNS = ("Employee", "Resources Names", "Resource Names", "User", "UserName", "User Name", "Name")
QUESTION_COLUMNS = ("Question", "Questions", "Task", "Activity")
KNOWN_COLUMNS = {c.lower() for c in TEAM_COLUMNS + EMPLOYEE_COLUMNS + QUESTION_COLUMNS}

PLACEHOLDER_VALUES = {"#NAME?", "undefined"}
LEAVE_WORDS = {"leave", "absent", "sick leave", "off", "optional holiday"}

DATE_HEADER_RE = re.compile(r"\d{1,2}[-/ ][A-Za-z]{3,}")
DAY_MONTH_RE = re.compile(r"^\s*(\d{1,2})[-/ ]([A-Za-z]{3,})(?:[-/ ](\d{2,4}))?\s*$")
MONTHS = {m: i for i, m in enumerate(
    ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1)}


class RowContext(NamedTuple):
    """Carried-forward (team, employee, question) pointers."""
    team: str | None = None
    employee: str | None = None
    question: str | None = None

    def advance(self, team=None, employee=None, question=None) -> "RowContext":
        """Context for the next row: non-empty cells replace the matching pointer."""
        return self._replace(
            team=team or self.team,
            employee=employee or self.employee,
            question=question or self.question,
        )

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.team:
            missing.append("Team")
        if not self.employee:
            missing.append("Employee")
        if not self.question:
            missing.append("Question")
        return missing


class FlatRecord(NamedTuple):
    row: int
    team: str
    employee: str
    question: str
    date_label: str
    answer: str
    is_leave: bool


class RowError(NamedTuple):
    row: int
    missing_fields: list[str]


@dataclass
class ParseResult:
    records: list[FlatRecord]
    row_errors: list[RowError]


@dataclass
class DayEntry:
    team: str
    employee: str
    date_label: str
    is_leave: bool = False
    leave_reason: str | None = None
    responses: list[tuple[str, str]] = field(default_factory=list)


def clean_cell(value) -> str | None:
    """Cell value as trimmed text; empty cells and placeholders give None."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, datetime):
        value = value.date().isoformat()
    text = str(value).strip()
    if not text or text in PLACEHOLDER_VALUES:
        return None
    return text


def is_leave_answer(answer: str) -> bool:
    return answer.strip().lower() in LEAVE_WORDS


def is_date_header(header: str) -> bool:
    return header.lower() not in KNOWN_COLUMNS and bool(DATE_HEADER_RE.search(header))


def _first_value(row: dict, aliases) -> str | None:
    lowered = {str(k).lower(): v for k, v in row.items()}
    for alias in aliases:
        value = clean_cell(lowered.get(alias.lower()))
        if value:
            return value
    return None


def fold_rows(rows: Iterable[tuple[int, dict]]) -> ParseResult:
    """
    Fold the data rows into flat records.

    rows are (sheet row number, {header: value}) pairs. A row that still
    lacks a team, employee or question after carry-forward is recorded as a
    row error and skipped. Raises ImportRejectedError when nothing is left.
    """
    context = RowContext()
    records: list[FlatRecord] = []
    row_errors: list[RowError] = []

    for row_number, row in rows:
        if not row:
            continue
        context = context.advance(
            team=_first_value(row, TEAM_COLUMNS),
            employee=_first_value(row, EMPLOYEE_COLUMNS),
            question=_first_value(row, QUESTION_COLUMNS),
        )
        missing = context.missing_fields()
        if missing:
            row_errors.append(RowError(row=row_number, missing_fields=missing))
            continue

        for header, value in row.items():
            if not is_date_header(str(header)):
                continue
            answer = clean_cell(value)
            if not answer:
                continue
            records.append(FlatRecord(
                row=row_number,
                team=context.team,
                employee=context.employee,
                question=context.question,
                date_label=str(header),
                answer=answer,
                is_leave=is_leave_answer(answer),
            ))

    logger.info("Folded spreadsheet rows into %d records (%d row errors)", len(records), len(row_errors))
    if not records:
        raise ImportRejectedError(
            "No valid data found",
            {"row_errors": [e._asdict() for e in row_errors]},
        )
    return ParseResult(records=records, row_errors=row_errors)


def group_day_entries(records: Iterable[FlatRecord]) -> list[DayEntry]:
    """One entry per (team, employee, date); a leave answer makes the whole day leave."""
    entries: dict[tuple[str, str, str], DayEntry] = {}
    for record in records:
        key = (record.team, record.employee, record.date_label)
        entry = entries.get(key)
        if entry is None:
            entry = entries[key] = DayEntry(record.team, record.employee, record.date_label)
        if record.is_leave:
            entry.is_leave = True
            entry.leave_reason = record.answer
        else:
            entry.responses.append((record.question, record.answer))

    for entry in entries.values():
        if entry.is_leave:
            entry.responses = []
    return list(entries.values())


def parse_header_date(label: str, today: date | None = None) -> tuple[date, bool]:
    """
    Convert a date header to a day. Accepts D-Mon[-YYYY] (current year by
    default) and ISO YYYY-MM-DD. Anything else gives (today, True).
    """
    today = today or date.today()
    label = (label or "").strip()

    match = DAY_MONTH_RE.match(label)
    if match:
        day_str, month_str, year_str = match.groups()
        month = MONTHS.get(month_str[:3].lower())
        if month:
            year = today.year
            if year_str:
                year = int(year_str)
                if year < 100:
                    year += 2000
            try:
                return date(year, month, int(day_str)), False
            except ValueError:
                pass

    try:
        return date.fromisoformat(label[:10]), False
    except ValueError:
        pass

    logger.warning("Could not parse date %r, using %s", label, today.isoformat())
    return today, True


def format_header(value, index: int) -> str:
    """Header cell as text; real dates become D-Mon-YYYY so they match the date column pattern."""
    if isinstance(value, (datetime, date)):
        return f"{value.day}-{value.strftime('%b')}-{value.year}"
    text = "" if value is None else str(value).strip()
    return text or f"Column{index}"


def read_workbook_rows(content: bytes) -> list[tuple[int, dict]]:
    """Decode the first worksheet into (row number, {header: value}) pairs."""
    try:
        workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, ValueError, OSError) as e:
        logger.warning("Excel file load error: %s", e)
        raise ImportRejectedError(
            "Invalid Excel file format. Please ensure the file is a valid .xlsx workbook",
            {"error": str(e)},
        )

    try:
        if not workbook.worksheets:
            raise ImportRejectedError("No worksheet found in Excel file")
        sheet = workbook.worksheets[0]
        values = sheet.iter_rows(values_only=True)
        header_row = next(values, None)
        if header_row is None:
            raise ImportRejectedError("No data rows found in Excel file")
        headers = [format_header(v, i) for i, v in enumerate(header_row, start=1)]

        rows = []
        for row_number, cells in enumerate(values, start=2):
            data = {
                headers[i]: value
                for i, value in enumerate(cells)
                if i < len(headers) and value is not None and str(value).strip() != ""
            }
            if data:
                rows.append((row_number, data))
    finally:
        workbook.close()

    if not rows:
        raise ImportRejectedError("No data rows found in Excel file")
    logger.info("Read %d data rows from worksheet %s", len(rows), sheet.title)
    return rows
