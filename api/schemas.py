from __future__ import annotations

from pydantic import BaseModel, Field

from sheetdash.data import PRIORITY_MEDIUM, STATUS_PENDING


class MeetingModel(BaseModel):
    title: str = Field(min_length=1)
    assign_date: str = Field(min_length=1)
    category: str = ""
    organization: str = ""
    assignee: str = ""
    due_date: str = ""
    status: str = STATUS_PENDING
    note: str = ""


class TodoModel(BaseModel):
    task: str = Field(min_length=1)
    meeting_id: str = ""
    assignee: str = ""
    assigner: str = ""
    due_date: str = ""
    priority: str = PRIORITY_MEDIUM
    status: str = STATUS_PENDING


class StatusUpdateModel(BaseModel):
    id: str = Field(min_length=1)
    status: str = Field(min_length=1)
    sheet: str = Field(min_length=1)


class ApiKeyModel(BaseModel):
    api_key: str = Field(min_length=1)
