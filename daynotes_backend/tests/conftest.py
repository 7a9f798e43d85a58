import pytest
from fastapi.testclient import TestClient

from daynotes_backend.api.main import app, get_authenticator, get_db
from daynotes_backend.identity import IdentityStore, PasslibAuthenticator
from daynotes_backend.notes import NoteStore
from daynotes_database import Database, init_db


@pytest.fixture
def database():
    """A fresh in-memory SQLite database with all tables created."""
    db = Database.from_url("sqlite://")
    init_db(db)
    yield db
    db.dispose()

@pytest.fixture(scope="session")
def authenticator():
    """pbkdf2 keeps the suite fast; production uses bcrypt."""
    return PasslibAuthenticator(schemes=("pbkdf2_sha256",))

@pytest.fixture
def identity(database, authenticator):
    return IdentityStore(database, authenticator)

@pytest.fixture
def notes(database):
    return NoteStore(database)

@pytest.fixture
def owner(identity):
    """Id of a registered user that notes can belong to."""
    return identity.register("alice", "pw1").id

@pytest.fixture
def client(database, authenticator):
    """Fixture for FastAPI TestClient with test DB dependency override."""
    app.dependency_overrides[get_db] = lambda: database
    app.dependency_overrides[get_authenticator] = lambda: authenticator

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

@pytest.fixture
def user_data():
    """Returns default user data for registration."""
    return {"username": "alice", "password": "alicepassword123"}

@pytest.fixture
def second_user_data():
    """Returns a second user's data."""
    return {"username": "bob", "password": "bobpassword456"}

def register_and_auth(client, username, password):
    """Helper for registering then logging in to get a session token."""
    r1 = client.post("/register", json={"username": username, "password": password})
    assert r1.status_code in (201, 409)

    r2 = client.post("/login", json={"username": username, "password": password})
    assert r2.status_code == 200
    return r2.json()

@pytest.fixture
def auth_header(client, user_data):
    """Returns {'Authorization': 'Bearer <token>'} for default user."""
    token = register_and_auth(client, user_data["username"], user_data["password"])
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def second_auth_header(client, second_user_data):
    """Returns auth header for second user."""
    token = register_and_auth(client, second_user_data["username"], second_user_data["password"])
    return {"Authorization": f"Bearer {token}"}
