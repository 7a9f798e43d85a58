"""
Identity store: registration, login with token rotation, token lookup.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError

from daynotes_database import Database, User

from .errors import BadRequest, Conflict, Unauthorized, storage_errors

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class Authenticator(Protocol):
    """Password hashing capability. Hashes are opaque to everything else."""

    def hash(self, password: str) -> str:
        ...

    def verify(self, password: str, password_hash: str) -> bool:
        ...


class PasslibAuthenticator:
    """`Authenticator` backed by a passlib CryptContext (bcrypt by default)."""

    def __init__(self, schemes: Sequence[str] = ("bcrypt",)):
        self._context = CryptContext(schemes=list(schemes), deprecated="auto")

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            # Unknown or corrupt hash, e.g. one restored from a foreign export.
            return False


@dataclass(frozen=True)
class Account:
    id: int
    username: str


def new_session_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


class IdentityStore:
    def __init__(self, database: Database, authenticator: Authenticator):
        self.database = database
        self.authenticator = authenticator

    # PUBLIC_INTERFACE
    def register(self, username: str, password: str) -> Account:
        """Create a user. Raises Conflict if the username is taken."""
        if not username or not username.strip():
            raise BadRequest("Username must not be empty.")
        password_hash = self.authenticator.hash(password)

        with storage_errors("register"):
            try:
                with self.database.writing() as session:
                    if session.query(User.id).filter(User.username == username).first():
                        raise Conflict("Username already taken.")
                    user = User(username=username, password_hash=password_hash)
                    session.add(user)
                    session.flush()
                    account = Account(id=user.id, username=user.username)
            except IntegrityError:
                raise Conflict("Username already taken.") from None

        logger.info("Registered user %s (id=%s)", account.username, account.id)
        return account

    # PUBLIC_INTERFACE
    def login(self, username: str, password: str) -> str:
        """
        Verify credentials and issue a fresh session token.

        The new token replaces whatever token the user held before. Unknown
        usernames and wrong passwords raise the same Unauthorized error.
        """
        with storage_errors("login"):
            with self.database.reading() as session:
                row = (
                    session.query(User.id, User.password_hash)
                    .filter(User.username == username)
                    .first()
                )
        if row is None or not self.authenticator.verify(password, row.password_hash):
            raise Unauthorized("Invalid credentials.")

        token = new_session_token()
        with storage_errors("login"):
            with self.database.writing() as session:
                # A restore may have replaced the user between the two steps.
                updated = (
                    session.query(User)
                    .filter(User.id == row.id, User.password_hash == row.password_hash)
                    .update({User.token: token}, synchronize_session=False)
                )
                if not updated:
                    raise Unauthorized("Invalid credentials.")
        return token

    # PUBLIC_INTERFACE
    def authenticate(self, token: Optional[str]) -> Account:
        """Return the account holding `token`, or raise Unauthorized."""
        if not token:
            raise Unauthorized()
        with storage_errors("authenticate"):
            with self.database.reading() as session:
                row = session.query(User.id, User.username).filter(User.token == token).first()
        if row is None:
            raise Unauthorized()
        return Account(id=row.id, username=row.username)
