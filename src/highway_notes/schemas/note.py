"""Pydantic schemas for notes.

Separate "Create"/"Update" schemas (input) from "Read" schemas (output).
Titles and content are trimmed before the length checks run.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from highway_notes.schemas.common import ApiModel


class NoteCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)


class NoteUpdate(ApiModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)


class NoteRead(ApiModel):
    id: uuid.UUID
    title: str
    content: str
    author_id: uuid.UUID
    created_at: datetime
    updated_at: datetime


class NoteResponse(ApiModel):
    success: bool = True
    message: Optional[str] = None
    note: NoteRead


class NoteListResponse(ApiModel):
    success: bool = True
    count: int
    notes: list[NoteRead]
