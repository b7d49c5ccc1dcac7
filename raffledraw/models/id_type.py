import uuid

from sqlalchemy import String

# UUIDs are stored as their canonical 36-character text form so the same
# schema works on SQLite and PostgreSQL.
ID_TYPE = String(36)


def new_id() -> str:
    return str(uuid.uuid4())
