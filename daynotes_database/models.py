from sqlalchemy import Column, Integer, String, Date, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# PUBLIC_INTERFACE
class User(Base):
    """
    SQLAlchemy model for a user of the daily notes service.

    `token` holds the single active session token, or NULL before the first login.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(64), unique=True, index=True, nullable=False)
    password_hash = Column(String(256), nullable=False)
    token = Column(String(128), unique=True, index=True, nullable=True)

    notes = relationship("Note", back_populates="owner")

# PUBLIC_INTERFACE
class Note(Base):
    """
    SQLAlchemy model for a daily note. One row per (user_id, note_date).
    """
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    note_date = Column(Date, nullable=False)
    content = Column(Text, nullable=False, default="")

    owner = relationship("User", back_populates="notes")

    __table_args__ = (
        UniqueConstraint("user_id", "note_date", name="uq_notes_user_date"),
    )
