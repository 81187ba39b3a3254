#!/usr/bin/env python3
"""Script to add the slot reservation indexes to an existing database."""
from sqlalchemy import create_engine, text

from common.config import get_settings

INDEXES = {
    "ix_slot_reservations_conflict": "slot_reservations (resource_id, start, \"end\", status)",
    "ix_slot_reservations_status_created": "slot_reservations (status, created_at)",
    "ix_slot_reservations_owner_status": "slot_reservations (owner_id, status)",
    "ix_slot_reservations_expires_at": "slot_reservations (expires_at)",
}


def add_indexes(database_url: str) -> None:
    engine = create_engine(database_url)
    with engine.begin() as conn:
        for name, target in INDEXES.items():
            conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {target};"))
            print(f"  {name}")
    print("Indexes added successfully.")


if __name__ == "__main__":
    add_indexes(get_settings().database_url)
