from pydantic import BaseModel, EmailStr, Field
from typing import Literal

Role = Literal["employee", "manager", "admin"]

class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str | None = Field(default=None, min_length=6)
    role: Role = "employee"
    teams: list[str] = []
    projects: list[str] = []  # managed projects, admin only

class UserUpdate(BaseModel):
    name: str | None = None
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=6)
    role: Role | None = None
    teams: list[str] | None = None
    projects: list[str] | None = None
