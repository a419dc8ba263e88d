"""Note service — CRUD over notes, always scoped to one author.

Every lookup filters on author_id, so another user's note is
indistinguishable from a missing one (both raise NoteNotFound).
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.db.models import Note
from highway_notes.errors import NoteNotFound


class NoteService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_notes(self, author_id: uuid.UUID) -> list[Note]:
        result = await self.db.execute(
            select(Note)
            .where(Note.author_id == author_id)
            .order_by(Note.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_note(self, author_id: uuid.UUID, note_id: uuid.UUID) -> Note:
        result = await self.db.execute(
            select(Note).where(Note.id == note_id, Note.author_id == author_id)
        )
        note = result.scalars().first()
        if not note:
            raise NoteNotFound()
        return note

    async def create_note(self, author_id: uuid.UUID, title: str, content: str) -> Note:
        note = Note(title=title, content=content, author_id=author_id)
        self.db.add(note)
        await self.db.commit()
        return note

    async def update_note(
        self,
        author_id: uuid.UUID,
        note_id: uuid.UUID,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Note:
        note = await self.get_note(author_id, note_id)
        if title is not None:
            note.title = title
        if content is not None:
            note.content = content
        await self.db.commit()
        return note

    async def delete_note(self, author_id: uuid.UUID, note_id: uuid.UUID) -> None:
        note = await self.get_note(author_id, note_id)
        await self.db.delete(note)
        await self.db.commit()
