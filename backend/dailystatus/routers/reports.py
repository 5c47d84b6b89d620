from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
import io
from ..dependencies.auth import require_manager
from ..services.access import Actor
from ..services.date_ranges import parse_day, resolve_report_range
from ..services.excel_export import XLSX_MEDIA_TYPE, render_workbook
from ..services.report_service import build_status_report, split_ids

router = APIRouter(prefix="/reports", tags=["reports"])

@router.get("/excel")
async def status_report_excel(
    team: str | None = None,
    teams: str | None = None,
    user: str | None = None,
    users: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    month: str | None = None,
    actor: Actor = Depends(require_manager),
):
    """
    Grouped status report: one row per team, user and question, one column per
    day of the range. startDate without endDate runs through today.
    """
    first, last = resolve_report_range(
        start=parse_day(startDate, "startDate"),
        end=parse_day(endDate, "endDate"),
        month=month,
    )
    grid = await build_status_report(actor, split_ids(teams, team), split_ids(users, user), first, last)
    return StreamingResponse(
        io.BytesIO(render_workbook(grid)),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="status-report.xlsx"'},
    )
