from fastapi import APIRouter, Depends, Response
from fastapi.responses import StreamingResponse
import io
from ..dependencies.auth import get_actor, require_manager
from ..models.status import StatusCreate, StatusUpdateBody
from ..services import status_service
from ..services.access import Actor
from ..services.date_ranges import parse_day, resolve_report_range, resolve_status_window
from ..services.excel_export import XLSX_MEDIA_TYPE, render_workbook
from ..services.report_service import build_status_export, split_ids

router = APIRouter(prefix="/status", tags=["status"])

@router.post("")
async def save_status(body: StatusCreate, response: Response, actor: Actor = Depends(get_actor)):
    """Create or replace the status for (user, team, day). Returns 201 when a new one was created."""
    outcome = await status_service.save_status(actor, body)
    response.status_code = 201 if outcome.created else 200
    return (await status_service.populate_statuses([outcome.status]))[0]

@router.get("")
async def list_statuses(
    user: str | None = None,
    team: str | None = None,
    teams: str | None = None,
    date: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    month: str | None = None,
    actor: Actor = Depends(get_actor),
):
    """Statuses visible to the caller. Teams outside the caller's reach are ignored."""
    first, last = resolve_status_window(
        on=parse_day(date, "date"),
        start=parse_day(startDate, "startDate"),
        end=parse_day(endDate, "endDate"),
        month=month,
    )
    statuses, _ = await status_service.list_statuses(
        actor,
        user_id=user,
        team_ids=split_ids(teams, team),
        first=first,
        last=last,
    )
    return statuses

@router.get("/summary")
async def status_summary(
    team: str,
    startDate: str | None = None,
    endDate: str | None = None,
    actor: Actor = Depends(get_actor),
):
    """Per user and day: leave flag and answered question count for one team."""
    first, last = resolve_report_range(
        start=parse_day(startDate, "startDate"),
        end=parse_day(endDate, "endDate"),
    )
    return await status_service.status_summary(actor, team, first, last)

@router.get("/export/excel")
async def export_statuses(
    team: str | None = None,
    user: str | None = None,
    date: str | None = None,
    month: str | None = None,
    actor: Actor = Depends(require_manager),
):
    """Per-cell export of the matching statuses, one column per date with data."""
    first, last = resolve_status_window(on=parse_day(date, "date"), month=month)
    grid = await build_status_export(actor, team, user, first, last)
    return StreamingResponse(
        io.BytesIO(render_workbook(grid)),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="status-report.xlsx"'},
    )

@router.get("/{status_id}")
async def get_status(status_id: str, actor: Actor = Depends(get_actor)):
    return await status_service.read_status(actor, status_id)

@router.put("/{status_id}")
async def update_status(status_id: str, body: StatusUpdateBody, actor: Actor = Depends(get_actor)):
    status = await status_service.update_status(actor, status_id, body)
    return (await status_service.populate_statuses([status]))[0]

@router.delete("/{status_id}")
async def delete_status(status_id: str, actor: Actor = Depends(require_manager)):
    await status_service.delete_status(actor, status_id)
    return {"message": "Status removed"}
