#!/usr/bin/env python3
"""Script to add database indexes for the availability and listing queries."""
from sqlalchemy import create_engine, text

from common.config import get_settings

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_reservations_room_interval ON reservations (room_id, starts_at, ends_at);",
    "CREATE INDEX IF NOT EXISTS idx_reservations_status ON reservations (status);",
    "CREATE INDEX IF NOT EXISTS idx_rooms_property_id ON rooms (property_id);",
    "CREATE INDEX IF NOT EXISTS idx_properties_organisation_id ON properties (organisation_id);",
    "CREATE INDEX IF NOT EXISTS idx_user_organisations_user_id ON user_organisations (user_id);",
    "CREATE INDEX IF NOT EXISTS idx_calendar_configs_room_id ON calendar_configs (room_id);",
]


def add_indexes():
    engine = create_engine(get_settings().database_url)
    with engine.begin() as conn:
        for statement in INDEXES:
            conn.execute(text(statement))
    print("Indexes added successfully.")


if __name__ == "__main__":
    add_indexes()
