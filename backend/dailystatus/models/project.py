from pydantic import BaseModel, Field

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    managers: list[str] = []

class ProjectUpdate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    managers: list[str] | None = None
    active: bool | None = None
