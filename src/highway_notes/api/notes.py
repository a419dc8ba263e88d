"""Notes API routes.

Learn: Every route here runs behind the access guard (mounted with
Depends(get_current_user) in api/__init__.py) and re-reads the resolved
user through the same dependency, which FastAPI evaluates once per
request. The service scopes every query to that user.
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.auth.dependencies import get_current_user
from highway_notes.db.engine import get_db
from highway_notes.db.models import User
from highway_notes.schemas.common import MessageResponse
from highway_notes.schemas.note import (
    NoteCreate,
    NoteListResponse,
    NoteRead,
    NoteResponse,
    NoteUpdate,
)
from highway_notes.services.note_service import NoteService

router = APIRouter(prefix="/notes")


def _svc(db: AsyncSession = Depends(get_db)) -> NoteService:
    return NoteService(db)


@router.get("", response_model=NoteListResponse)
async def list_notes(
    user: User = Depends(get_current_user),
    svc: NoteService = Depends(_svc),
):
    """All of the current user's notes, newest first."""
    notes = await svc.list_notes(user.id)
    return NoteListResponse(
        count=len(notes),
        notes=[NoteRead.model_validate(n) for n in notes],
    )


@router.post("", response_model=NoteResponse, status_code=201)
async def create_note(
    body: NoteCreate,
    user: User = Depends(get_current_user),
    svc: NoteService = Depends(_svc),
):
    note = await svc.create_note(user.id, title=body.title, content=body.content)
    return NoteResponse(message="Note created successfully", note=NoteRead.model_validate(note))


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(
    note_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: NoteService = Depends(_svc),
):
    note = await svc.get_note(user.id, note_id)
    return NoteResponse(note=NoteRead.model_validate(note))


@router.put("/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: uuid.UUID,
    body: NoteUpdate,
    user: User = Depends(get_current_user),
    svc: NoteService = Depends(_svc),
):
    note = await svc.update_note(user.id, note_id, title=body.title, content=body.content)
    return NoteResponse(message="Note updated successfully", note=NoteRead.model_validate(note))


@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_note(
    note_id: uuid.UUID,
    user: User = Depends(get_current_user),
    svc: NoteService = Depends(_svc),
):
    await svc.delete_note(user.id, note_id)
    return MessageResponse(message="Note deleted successfully")
