#!/usr/bin/env python3
"""
Database reset script for Locum Match.

This script clears all data and reinitializes the database with empty tables.
Use this to get a clean database state for local development.
"""

import os
import sys

# Add backend/src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'backend', 'src'))

from sqlalchemy import inspect

from core.config import DATABASE_URL
from core.database import create_tables, drop_tables, engine

EXPECTED_TABLES = [
    'appointment_requests',
    'appointment_applications',
    'appointment_confirmations',
    'bookings',
    'cancellation_penalties',
    'ignored_appointments',
    'locum_schedule_locks',
]


def reset_database(force: bool = False):
    """Reset the database by dropping all tables and recreating them."""

    print("🔄 Resetting Locum Match database...")
    print(f"Database URL: {DATABASE_URL}")

    # Confirm action (in case someone runs this accidentally)
    if not force and not any(marker in str(DATABASE_URL) for marker in ('_dev', '_test', 'sqlite')):
        print("❌ ERROR: Refusing to reset a database that does not look like a dev/test database!")
        print("Pass --force to override.")
        return

    try:
        print("🗑️  Dropping existing tables...")
        drop_tables()

        print("🏗️  Creating fresh tables...")
        create_tables()

        table_names = inspect(engine).get_table_names()
        print("📋 Created tables:")
        for table in EXPECTED_TABLES:
            if table in table_names:
                print(f"   ✅ {table}")
            else:
                print(f"   ❌ {table} (missing)")

        if all(table in table_names for table in EXPECTED_TABLES):
            print("🎉 Database reset complete! All tables created successfully.")
        else:
            print("⚠️  Warning: Some tables may be missing")

    except Exception as e:
        print(f"❌ Error resetting database: {e}")
        raise


def show_usage():
    """Show usage information."""
    print("Locum Match Database Reset Script")
    print("=" * 40)
    print()
    print("This script will:")
    print("1. Drop all existing tables")
    print("2. Recreate all tables with empty data")
    print()
    print("Usage:")
    print("  python reset_database.py [--force]")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ['--help', '-h']:
        show_usage()
    else:
        reset_database(force='--force' in sys.argv)
