"""
Snapshot codec: the whole dataset (users and notes) as one JSON document.

Layout, kept compatible with exports produced by earlier versions of the bot:

    {
      "users": [{"id", "username", "password_hash", "token"}, ...],
      "notes": [{"id", "user_id", "note_date", "content"}, ...]
    }

`serialize` is deterministic (users by id, notes by owner/date/id, fixed key
order) so two exports of the same data diff cleanly. `deserialize` either
returns a fully validated `Snapshot` or raises `Malformed`.
"""
import json
from datetime import date
from typing import Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, model_validator

from daynotes_database import Database, Note, User

from .errors import Malformed, storage_errors

EXPORT_PREFIX = "db_export_"
# ids land in 32-bit INTEGER columns on PostgreSQL
MAX_ROW_ID = 2**31 - 1


class UserRecord(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    id: StrictInt = Field(..., ge=1, le=MAX_ROW_ID)
    username: StrictStr = Field(..., min_length=1)
    password_hash: StrictStr
    token: Optional[StrictStr] = None


class NoteRecord(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    id: StrictInt = Field(..., ge=1, le=MAX_ROW_ID)
    user_id: StrictInt = Field(..., ge=1, le=MAX_ROW_ID)
    note_date: date
    content: StrictStr


class Snapshot(BaseModel):
    """A consistent, validated copy of every user and every note."""

    model_config = ConfigDict(strict=True, frozen=True)

    users: List[UserRecord]
    notes: List[NoteRecord]

    @model_validator(mode="after")
    def check_integrity(self):
        user_ids = set()
        usernames = set()
        tokens = set()
        for user in self.users:
            if user.id in user_ids:
                raise ValueError(f"duplicate user id {user.id}")
            if user.username in usernames:
                raise ValueError(f"duplicate username {user.username!r}")
            if user.token is not None:
                if user.token in tokens:
                    raise ValueError(f"token shared by more than one user (user id {user.id})")
                tokens.add(user.token)
            user_ids.add(user.id)
            usernames.add(user.username)

        note_ids = set()
        note_keys = set()
        for note in self.notes:
            if note.id in note_ids:
                raise ValueError(f"duplicate note id {note.id}")
            if note.user_id not in user_ids:
                raise ValueError(f"note {note.id} belongs to unknown user {note.user_id}")
            key = (note.user_id, note.note_date)
            if key in note_keys:
                raise ValueError(
                    f"more than one note for user {note.user_id} on {note.note_date.isoformat()}"
                )
            note_ids.add(note.id)
            note_keys.add(key)
        return self


def build_snapshot(users: Iterable[UserRecord], notes: Iterable[NoteRecord]) -> Snapshot:
    """Validate and order records the way `serialize` writes them."""
    return Snapshot(
        users=sorted(users, key=lambda u: u.id),
        notes=sorted(notes, key=lambda n: (n.user_id, n.note_date, n.id)),
    )


# PUBLIC_INTERFACE
def serialize(users: Iterable[UserRecord], notes: Iterable[NoteRecord]) -> bytes:
    """Encode the dataset as pretty-printed UTF-8 JSON."""
    snapshot = build_snapshot(users, notes)
    return json.dumps(snapshot.model_dump(mode="json"), indent=2, ensure_ascii=False).encode("utf-8")


# PUBLIC_INTERFACE
def deserialize(blob: Union[bytes, str]) -> Snapshot:
    """Parse and validate an export. Raises Malformed; never returns partial data."""
    if isinstance(blob, str):
        blob = blob.encode("utf-8")
    if not blob:
        raise Malformed("Snapshot is empty.")
    try:
        snapshot = Snapshot.model_validate_json(blob)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "document"
        raise Malformed(f"Malformed snapshot at {location}: {first['msg']}") from None
    return build_snapshot(snapshot.users, snapshot.notes)


# PUBLIC_INTERFACE
def export_filename(day: Optional[date] = None) -> str:
    day = day or date.today()
    return f"{EXPORT_PREFIX}{day.isoformat()}.json"


# PUBLIC_INTERFACE
def load_snapshot(database: Database) -> Snapshot:
    """Read every user and note under the shared lock, as one consistent view."""
    with storage_errors("load snapshot"):
        with database.reading() as session:
            users = [
                UserRecord(id=u.id, username=u.username, password_hash=u.password_hash, token=u.token)
                for u in session.query(User).all()
            ]
            notes = [
                NoteRecord(id=n.id, user_id=n.user_id, note_date=n.note_date, content=n.content)
                for n in session.query(Note).all()
            ]
    return build_snapshot(users, notes)
