"""
Destructive restore: replace every user and note with the contents of an export.

There is no implicit backup of the data being discarded. Operators who want
one should run an export first.
"""
import logging
from dataclasses import dataclass
from typing import Union

from sqlalchemy import text

from daynotes_database import Database, Note, User

from .errors import storage_errors
from .snapshot import Snapshot, deserialize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreSummary:
    users: int
    notes: int


def _advance_sequences(session):
    # Explicit ids bypass PostgreSQL serial sequences; move them past the restored rows.
    for table in ("users", "notes"):
        session.execute(
            text(
                f"SELECT setval(pg_get_serial_sequence('{table}', 'id'), "
                f"COALESCE((SELECT MAX(id) FROM {table}), 0) + 1, false)"
            )
        )


# PUBLIC_INTERFACE
def replace_dataset(database: Database, snapshot: Snapshot) -> RestoreSummary:
    """
    Swap the stored dataset for `snapshot` in one transaction.

    Runs under the exclusive lock, so no reader sees the wiped or half-filled
    tables; any failure rolls back to the previous dataset.
    """
    with storage_errors("restore"):
        with database.writing() as session:
            session.query(Note).delete(synchronize_session=False)
            session.query(User).delete(synchronize_session=False)
            session.flush()
            session.add_all(User(**record.model_dump()) for record in snapshot.users)
            session.flush()
            session.add_all(Note(**record.model_dump()) for record in snapshot.notes)
            session.flush()
            if database.dialect_name == "postgresql":
                _advance_sequences(session)
    return RestoreSummary(users=len(snapshot.users), notes=len(snapshot.notes))


# PUBLIC_INTERFACE
def restore(database: Database, blob: Union[bytes, str]) -> RestoreSummary:
    """
    Validate `blob` and, only if it is a well-formed export, replace the dataset.

    Raises Malformed (nothing written) or StorageError (rolled back).
    """
    snapshot = deserialize(blob)
    summary = replace_dataset(database, snapshot)
    logger.warning(
        "Dataset replaced from snapshot: %d users, %d notes", summary.users, summary.notes
    )
    return summary
