"""
Note store: at most one note per (owner, calendar date).

Uniqueness is enforced twice: the existence check and insert run under the
database's exclusive lock, and the `uq_notes_user_date` constraint rejects
anything that slips past it (e.g. another process on the same database).
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Union

from sqlalchemy.exc import IntegrityError

from daynotes_database import Database, Note

from .errors import BadRequest, Conflict, NotFound, storage_errors

DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


@dataclass(frozen=True)
class DailyNote:
    note_date: date
    content: str


# PUBLIC_INTERFACE
def parse_note_date(value: Union[str, date]) -> date:
    """Accept a `date` or a strict `YYYY-MM-DD` string; raise BadRequest otherwise."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.fullmatch(value):
        raise BadRequest(f"Invalid date {value!r}; expected YYYY-MM-DD.")
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise BadRequest(f"Invalid date {value!r}; expected YYYY-MM-DD.") from None


class NoteStore:
    def __init__(self, database: Database):
        self.database = database

    def _find(self, session, owner_id: int, note_date: date):
        return (
            session.query(Note)
            .filter(Note.user_id == owner_id, Note.note_date == note_date)
            .first()
        )

    # PUBLIC_INTERFACE
    def create(self, owner_id: int, note_date, content: str) -> DailyNote:
        """Insert a note. Raises Conflict if the owner already has one for that date."""
        note_date = parse_note_date(note_date)
        with storage_errors("create note"):
            try:
                with self.database.writing() as session:
                    if self._find(session, owner_id, note_date) is not None:
                        raise Conflict("A note already exists for this date.")
                    session.add(Note(user_id=owner_id, note_date=note_date, content=content))
            except IntegrityError:
                raise Conflict("A note already exists for this date.") from None
        return DailyNote(note_date=note_date, content=content)

    # PUBLIC_INTERFACE
    def update(self, owner_id: int, note_date, content: str) -> DailyNote:
        """Overwrite the content of an existing note. Raises NotFound if there is none."""
        note_date = parse_note_date(note_date)
        with storage_errors("update note"):
            with self.database.writing() as session:
                note = self._find(session, owner_id, note_date)
                if note is None:
                    raise NotFound()
                note.content = content
        return DailyNote(note_date=note_date, content=content)

    # PUBLIC_INTERFACE
    def get(self, owner_id: int, note_date) -> DailyNote:
        note_date = parse_note_date(note_date)
        with storage_errors("get note"):
            with self.database.reading() as session:
                note = self._find(session, owner_id, note_date)
                if note is None:
                    raise NotFound()
                return DailyNote(note_date=note.note_date, content=note.content)

    # PUBLIC_INTERFACE
    def delete(self, owner_id: int, note_date) -> None:
        note_date = parse_note_date(note_date)
        with storage_errors("delete note"):
            with self.database.writing() as session:
                note = self._find(session, owner_id, note_date)
                if note is None:
                    raise NotFound()
                session.delete(note)

    # PUBLIC_INTERFACE
    def list_dates(self, owner_id: int) -> List[date]:
        """Distinct dates the owner has notes for, ascending."""
        with storage_errors("list note dates"):
            with self.database.reading() as session:
                rows = (
                    session.query(Note.note_date)
                    .filter(Note.user_id == owner_id)
                    .distinct()
                    .order_by(Note.note_date.asc())
                    .all()
                )
        return [row.note_date for row in rows]
