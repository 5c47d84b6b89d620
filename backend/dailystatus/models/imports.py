"""Request bodies for the JSON import endpoint (camelCase keys accepted)."""

from pydantic import BaseModel, ConfigDict, Field

class ImportResponse(BaseModel):
    question: str
    answer: str

class ImportEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    team_name: str = Field(alias="teamName", min_length=1)
    user_name: str = Field(alias="userName", min_length=1)
    date: str
    is_leave: bool = Field(default=False, alias="isLeave")
    leave_reason: str | None = Field(default=None, alias="leaveReason")
    responses: list[ImportResponse] = []

class ImportJsonBody(BaseModel):
    data: list[ImportEntry] = Field(min_length=1)
