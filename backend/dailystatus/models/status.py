from pydantic import BaseModel
from datetime import date as date_type

class StatusResponse(BaseModel):
    question_id: str | None = None
    answer: str | None = None

class StatusCreate(BaseModel):
    team_id: str
    user_id: str | None = None  # defaults to the caller
    date: date_type | None = None  # defaults to today
    is_leave: bool = False
    leave_reason: str | None = None
    responses: list[StatusResponse] = []

class StatusUpdateBody(BaseModel):
    date: date_type | None = None
    is_leave: bool | None = None
    leave_reason: str | None = None
    responses: list[StatusResponse] | None = None
