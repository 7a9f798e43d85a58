from fastapi import FastAPI, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from typing import List, Optional
import logging

from daynotes_database import Database

from ..errors import DaynotesError, StorageError, Unauthorized
from ..identity import Account, Authenticator, IdentityStore, PasslibAuthenticator
from ..notes import DATE_FORMAT, DailyNote, NoteStore

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)
default_authenticator = PasslibAuthenticator()


# Pydantic models for serialization and validation

class Credentials(BaseModel):
    username: str = Field(..., min_length=1, max_length=64, description="User's username")
    password: str = Field(..., min_length=1, max_length=256)

class UserOut(BaseModel):
    id: int
    username: str

class NoteIn(BaseModel):
    note_date: str = Field(..., description="Calendar date, YYYY-MM-DD")
    content: str = Field(..., description="Note content, may be empty")

class NoteOut(BaseModel):
    date: str
    content: str

    @classmethod
    def from_note(cls, note: DailyNote) -> "NoteOut":
        return cls(date=note.note_date.strftime(DATE_FORMAT), content=note.content)

# FastAPI app config
app = FastAPI(
    title="Daily Notes Backend API",
    description="One note per day per user, with bearer-token sessions.",
    version="1.0.0",
    openapi_tags=[
        {"name": "Authentication", "description": "User registration, login, and session lookup"},
        {"name": "Notes", "description": "Create, update, view, delete and list daily notes"}
    ]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # adjust for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# DATABASE Dependency
def get_db(request: Request) -> Database:
    database = getattr(request.app.state, "database", None)
    if database is None:
        logger.error("Request received before a database was configured")
        raise StorageError()
    return database

def get_authenticator() -> Authenticator:
    return default_authenticator

def get_identity_store(db=Depends(get_db), authenticator=Depends(get_authenticator)):
    return IdentityStore(db, authenticator)

def get_note_store(db=Depends(get_db)):
    return NoteStore(db)

def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    identity: IdentityStore = Depends(get_identity_store),
) -> Account:
    """Resolves the bearer token to the user currently holding it."""
    if credentials is None:
        raise Unauthorized()
    return identity.authenticate(credentials.credentials)

# Root Health Check
@app.get("/", summary="Health Check", tags=["General"])
def health_check():
    """Simple health check endpoint."""
    return {"message": "Healthy"}


#####################
# AUTH ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.post("/register", response_model=UserOut, status_code=201, summary="Register a new user", tags=["Authentication"])
def register(credentials: Credentials, identity: IdentityStore = Depends(get_identity_store)):
    """
    Register a new user.
    Returns the new user's id and username.
    """
    account = identity.register(credentials.username, credentials.password)
    return UserOut(id=account.id, username=account.username)

# PUBLIC_INTERFACE
@app.post("/login", response_model=str, summary="Login and get a session token", tags=["Authentication"])
def login(credentials: Credentials, identity: IdentityStore = Depends(get_identity_store)):
    """
    User login.
    Returns a fresh session token as a JSON string. Any token issued
    earlier for the same user stops working.
    """
    return identity.login(credentials.username, credentials.password)

# PUBLIC_INTERFACE
@app.get("/me", response_model=UserOut, summary="Get current user profile", tags=["Authentication"])
def get_profile(current_user: Account = Depends(get_current_user)):
    return UserOut(id=current_user.id, username=current_user.username)


#####################
# NOTES ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.post("/notes", response_model=NoteOut, status_code=201, summary="Create the note for a date", tags=["Notes"])
def create_note(note: NoteIn, store: NoteStore = Depends(get_note_store), current_user: Account = Depends(get_current_user)):
    """
    Create the note for `note_date`. Fails with 409 if that date already has one.
    """
    return NoteOut.from_note(store.create(current_user.id, note.note_date, note.content))

# PUBLIC_INTERFACE
@app.put("/notes", response_model=NoteOut, summary="Replace the note for a date", tags=["Notes"])
def update_note(note: NoteIn, store: NoteStore = Depends(get_note_store), current_user: Account = Depends(get_current_user)):
    """
    Overwrite the content of the note for `note_date`. Fails with 404 if there is none.
    """
    return NoteOut.from_note(store.update(current_user.id, note.note_date, note.content))

# PUBLIC_INTERFACE
@app.get("/notes/days", response_model=List[str], summary="List dates that have notes", tags=["Notes"])
def list_note_days(store: NoteStore = Depends(get_note_store), current_user: Account = Depends(get_current_user)):
    """
    Dates with a note for the authenticated user, ascending, as YYYY-MM-DD.
    """
    return [day.strftime(DATE_FORMAT) for day in store.list_dates(current_user.id)]

# PUBLIC_INTERFACE
@app.get("/notes/{date}", response_model=NoteOut, summary="Get the note for a date", tags=["Notes"])
def get_note(date: str, store: NoteStore = Depends(get_note_store), current_user: Account = Depends(get_current_user)):
    return NoteOut.from_note(store.get(current_user.id, date))

# PUBLIC_INTERFACE
@app.delete("/notes/{date}", status_code=204, summary="Delete the note for a date", tags=["Notes"])
def delete_note(date: str, store: NoteStore = Depends(get_note_store), current_user: Account = Depends(get_current_user)):
    store.delete(current_user.id, date)
    return Response(status_code=204)

# Error handler
@app.exception_handler(DaynotesError)
def daynotes_exception_handler(request, exc):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=headers,
    )
