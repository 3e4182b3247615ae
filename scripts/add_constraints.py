#!/usr/bin/env python3
"""Add a PostgreSQL exclusion constraint rejecting overlapping reservations.

The application already checks for conflicts under a room lock; the
constraint covers writers that bypass it. ``tsrange(..., '[)')`` is half-open
like the application check, so back-to-back reservations stay valid.
"""
from sqlalchemy import create_engine, text

from common.config import get_settings

STATEMENTS = [
    "CREATE EXTENSION IF NOT EXISTS btree_gist;",
    "ALTER TABLE reservations DROP CONSTRAINT IF EXISTS no_room_overlap;",
    """
    ALTER TABLE reservations ADD CONSTRAINT no_room_overlap
    EXCLUDE USING gist (
        room_id WITH =,
        tsrange(starts_at, ends_at, '[)') WITH &&
    ) WHERE (status <> 'CANCELLED');
    """,
]


def add_constraints():
    engine = create_engine(get_settings().database_url)
    if engine.dialect.name != "postgresql":
        print(f"Skipping: exclusion constraints need PostgreSQL, not {engine.dialect.name}.")
        return
    with engine.begin() as conn:
        for statement in STATEMENTS:
            conn.execute(text(statement))
    print("Overlap constraint added successfully.")


if __name__ == "__main__":
    add_constraints()
