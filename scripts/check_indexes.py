#!/usr/bin/env python3
"""Script to list the indexes present on the slot reservations table."""
from sqlalchemy import create_engine, inspect

from common.config import get_settings


def check_indexes(database_url: str) -> None:
    inspector = inspect(create_engine(database_url))
    if not inspector.has_table("slot_reservations"):
        print("Table slot_reservations does not exist.")
        return
    print("Indexes on slot_reservations:")
    for index in inspector.get_indexes("slot_reservations"):
        unique = " (unique)" if index.get("unique") else ""
        print(f"  {index['name']}: {', '.join(str(c) for c in index['column_names'])}{unique}")


if __name__ == "__main__":
    check_indexes(get_settings().database_url)
