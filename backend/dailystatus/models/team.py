from pydantic import BaseModel, Field

class TeamCreate(BaseModel):
    name: str = Field(min_length=1)
    project_id: str
    description: str | None = None
    members: list[str] = []
    questions: list[str] = []
    active: bool = True

class TeamUpdate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    members: list[str] | None = None
    questions: list[str] | None = None
    active: bool | None = None

class MemberAdd(BaseModel):
    user_id: str
