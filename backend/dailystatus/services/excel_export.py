"""
Status spreadsheets.

The grid builders are pure: they take already-loaded documents and return a
ReportGrid (values, per-cell styling, merges). render_workbook() turns a grid
into .xlsx bytes with openpyxl.
"""
import io
from dataclasses import dataclass, field
from datetime import date

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

WEEKEND_FILL = "D3D3D3"
ANSWER_FILLS = {"red": "FF6B6B", "green": "51CF66", "amber": "FFD43B"}
LEAVE_FONT = "FF0000"
FLAT_LEAVE_FILL = "FFA500"
FLAT_LEAVE_VALUES = {"leave", "sick leave", "personal"}


@dataclass
class Cell:
    value: str = ""
    fill: str | None = None
    font_color: str | None = None
    center: bool = False


@dataclass
class ReportGrid:
    headers: list[str]
    widths: list[int]
    # None marks a blank separator row
    rows: list[list[Cell] | None] = field(default_factory=list)
    # (first_row, last_row, column), 0-based data row and column indices
    merges: list[tuple[int, int, int]] = field(default_factory=list)
    title: str = "Status Report"


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def answer_cell(answer: str | None, day: date) -> Cell:
    """Answer cell; weekend grey wins over the red/green/amber fills."""
    value = answer or ""
    if is_weekend(day):
        return Cell(value, fill=WEEKEND_FILL)
    return Cell(value, fill=ANSWER_FILLS.get(value.strip().lower()))


def leave_cell(reason: str, day: date) -> Cell:
    return Cell(
        reason,
        fill=WEEKEND_FILL if is_weekend(day) else None,
        font_color=LEAVE_FONT,
        center=True,
    )


def _index_statuses(statuses) -> dict[tuple[str, str, date], dict]:
    return {
        (s["team_id"], s["user_id"], s["date"].date() if hasattr(s["date"], "date") else s["date"]): s
        for s in statuses
    }


def build_report_grid(teams, users, questions, statuses, days: list[date]) -> ReportGrid:
    """
    Grouped report: one row per (team, user, question) for every day in the
    range. The team label appears on the team's first row and the user label on
    the user's first row; a blank row follows each user. Leave days show the
    reason on the first question row and are merged down the user's rows.
    """
    grid = ReportGrid(
        headers=["Team", "User", "Question"] + [d.isoformat() for d in days],
        widths=[20, 20, 50] + [15] * len(days),
    )
    by_key = _index_statuses(statuses)

    for team in teams:
        team_id = team["team_id"]
        members = [u for u in users if team_id in (u.get("teams") or [])]
        team_questions = [q for q in questions if q.get("is_common") or team_id in (q.get("teams") or [])]
        if not team_questions:
            continue

        first_team_row = True
        for user in members:
            leave_days = {}
            answers = {}
            for day in days:
                status = by_key.get((team_id, user["user_id"], day))
                if not status:
                    continue
                if status.get("is_leave"):
                    leave_days[day] = status.get("leave_reason") or "Leave"
                else:
                    answers[day] = {r.get("question_id"): r.get("answer") for r in status.get("responses") or []}

            start_row = len(grid.rows)
            for index, question in enumerate(team_questions):
                row = [
                    Cell(team["name"] if first_team_row else ""),
                    Cell(user["name"] if index == 0 else ""),
                    Cell(question["text"]),
                ]
                for day in days:
                    if day in leave_days:
                        row.append(leave_cell(leave_days[day] if index == 0 else "", day))
                    else:
                        row.append(answer_cell(answers.get(day, {}).get(question["question_id"]), day))
                grid.rows.append(row)
                first_team_row = False

            if leave_days and len(team_questions) > 1:
                last_row = start_row + len(team_questions) - 1
                for column, day in enumerate(days, start=3):
                    if day in leave_days:
                        grid.merges.append((start_row, last_row, column))

            grid.rows.append(None)

    return grid


def build_flat_grid(statuses, users_by_id: dict, teams_by_id: dict, questions_by_id: dict) -> ReportGrid:
    """
    Per-cell export: only dates that have data, one row per (team, user,
    question seen in the data). Leave values are filled orange.
    """
    statuses = sorted(statuses, key=lambda s: s["date"])
    dates = sorted({s["date"].date().isoformat() for s in statuses})

    teams: dict[str, dict[str, dict]] = {}
    question_ids: list[str] = []
    for status in statuses:
        user_entry = teams.setdefault(status["team_id"], {}).setdefault(
            status["user_id"], {"leaves": {}, "answers": {}}
        )
        day = status["date"].date().isoformat()
        if status.get("is_leave"):
            user_entry["leaves"][day] = status.get("leave_reason") or "Leave"
            continue
        for response in status.get("responses") or []:
            question_id = response.get("question_id")
            if question_id not in question_ids:
                question_ids.append(question_id)
            user_entry["answers"].setdefault(question_id, {})[day] = response.get("answer")

    grid = ReportGrid(
        headers=["Team", "User", "Question"] + dates,
        widths=[15, 20, 30] + [20] * len(dates),
    )
    for team_id, team_users in teams.items():
        first_team_row = True
        for user_id, entry in team_users.items():
            for index, question_id in enumerate(question_ids):
                row = [
                    Cell(teams_by_id.get(team_id, {}).get("name", "") if first_team_row else ""),
                    Cell(users_by_id.get(user_id, {}).get("name", "") if index == 0 else ""),
                    Cell(questions_by_id.get(question_id, {}).get("text", "")),
                ]
                for day in dates:
                    value = entry["leaves"].get(day) or entry["answers"].get(question_id, {}).get(day) or ""
                    fill = FLAT_LEAVE_FILL if value.strip().lower() in FLAT_LEAVE_VALUES else None
                    row.append(Cell(value, fill=fill))
                grid.rows.append(row)
                first_team_row = False
    return grid


def render_workbook(grid: ReportGrid) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = grid.title

    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center")

    ws.append(grid.headers)
    for col_idx, width in enumerate(grid.widths, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width
        header = ws.cell(row=1, column=col_idx)
        header.font = Font(bold=True)
        header.alignment = center
        header.border = border

    for row_idx, row in enumerate(grid.rows, start=2):
        if row is None:
            continue
        for col_idx, item in enumerate(row, start=1):
            cell = ws.cell(row=row_idx, column=col_idx, value=item.value)
            cell.border = border
            if item.fill:
                cell.fill = PatternFill(start_color=item.fill, end_color=item.fill, fill_type="solid")
            if item.font_color:
                cell.font = Font(color=item.font_color)
            if item.center:
                cell.alignment = center

    for first, last, column in grid.merges:
        ws.merge_cells(
            start_row=first + 2, start_column=column + 1,
            end_row=last + 2, end_column=column + 1,
        )

    bio = io.BytesIO()
    wb.save(bio)
    return bio.getvalue()
