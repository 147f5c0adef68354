from typing import Literal

from pydantic import BaseModel, Field


class SuggestionRequest(BaseModel):
    task_description: str = Field(min_length=1, max_length=5000)


class SuggestionBody(BaseModel):
    title: str
    subtasks: list[str]
    priority: Literal["low", "medium", "high"]
    time_estimate_days: float


class SuggestionResponse(BaseModel):
    suggestions: SuggestionBody


class SuggestionErrorResponse(BaseModel):
    kind: str
    detail: str
