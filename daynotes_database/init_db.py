"""
Database initialization script.

Run `python -m daynotes_database.init_db` to create all required tables in
the database named by DATABASE_URL.
"""
from .db import Database, get_database_url
from .models import Base

# PUBLIC_INTERFACE
def init_db(database):
    """Initializes the database by creating all tables if they do not exist."""
    Base.metadata.create_all(bind=database.engine)

if __name__ == "__main__":
    init_db(Database.from_url(get_database_url()))
    print("Database tables created successfully.")
