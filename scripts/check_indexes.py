#!/usr/bin/env python3
"""Script to list tables, indexes and constraints of the configured database."""
from sqlalchemy import create_engine, inspect

from common.config import get_settings


def check_indexes():
    engine = create_engine(get_settings().database_url)
    inspector = inspect(engine)
    print("Tables:")
    for table in inspector.get_table_names():
        print(f"  {table}")

    print("\nDatabase Indexes:")
    for table in inspector.get_table_names():
        for index in inspector.get_indexes(table):
            print(f"Table: {table}, Index: {index['name']}, Columns: {', '.join(index['column_names'])}")
        for constraint in inspector.get_unique_constraints(table):
            print(f"Table: {table}, Unique: {constraint['name']}, Columns: {', '.join(constraint['column_names'])}")


if __name__ == "__main__":
    check_indexes()
