from pydantic import BaseModel, Field
from typing import Literal

QuestionType = Literal["text", "single_choice", "multiple_choice"]

CHOICE_TYPES = ("single_choice", "multiple_choice")

class QuestionOption(BaseModel):
    text: str = Field(min_length=1)
    order: int | None = None

class QuestionCreate(BaseModel):
    text: str = Field(min_length=1)
    type: QuestionType = "text"
    options: list[QuestionOption] = []
    is_common: bool = False
    teams: list[str] = []
    order: int = 0

class QuestionUpdate(BaseModel):
    text: str = Field(min_length=1)
    type: QuestionType | None = None
    options: list[QuestionOption] | None = None
    is_common: bool | None = None
    teams: list[str] | None = None
    order: int | None = None
    active: bool | None = None
