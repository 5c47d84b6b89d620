from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
import logging
import math
import os
from ..core.settings import settings
from ..dependencies.auth import get_actor, require_manager
from ..models.imports import ImportJsonBody
from ..services import import_service, status_service
from ..services.access import Actor
from ..services.date_ranges import parse_day

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/import", tags=["import"])

ALLOWED_EXTENSIONS = {".xlsx", ".xls"}

@router.post("/upload-status")
async def upload_status(excelFile: UploadFile | None = File(None), actor: Actor = Depends(require_manager)):
    """
    Import statuses from a spreadsheet. Columns: Team, Employee, Question and
    one column per date ("5-May"); blank team/employee/question cells repeat
    the value above.
    """
    if excelFile is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    _, ext = os.path.splitext(excelFile.filename or "")
    if ext.lower() not in ALLOWED_EXTENSIONS:
        raise HTTPException(status_code=400, detail="Only Excel files (.xlsx, .xls) are allowed")

    content = await excelFile.read()
    max_bytes = settings.IMPORT_MAX_FILE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=400,
            detail=f"File size too large. Maximum size is {settings.IMPORT_MAX_FILE_MB}MB.",
        )

    logger.info("Processing import file %s (%d bytes) for %s", excelFile.filename, len(content), actor.id)
    summary = await import_service.import_workbook(actor, content)
    return {"message": "Excel data uploaded and transformed successfully", "data": summary}

@router.post("/upload-status-json")
async def upload_status_json(body: ImportJsonBody, actor: Actor = Depends(require_manager)):
    """Import pre-grouped status entries: one per team, user and date."""
    logger.info("Processing %d status entries from JSON for %s", len(body.data), actor.id)
    summary = await import_service.import_json(actor, body.data)
    return {"message": "Status data uploaded successfully", "data": summary}

@router.get("/status")
async def imported_statuses(
    teamId: str | None = None,
    userId: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    includeLeave: bool = True,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(get_actor),
):
    """Paginated status listing, restricted to the caller's teams."""
    statuses, total = await status_service.list_statuses(
        actor,
        user_id=userId,
        team_ids=[teamId] if teamId else None,
        first=parse_day(startDate, "startDate"),
        last=parse_day(endDate, "endDate"),
        include_leave=includeLeave,
        skip=(page - 1) * limit,
        limit=limit,
    )
    return {
        "data": statuses,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }
