# collabhub/migrate.py
# Database migration module for PostgreSQL and SQLite
# Run: python -m collabhub.migrate

from collabhub.db import execute_query, get_db_connection, is_postgres


def run_migrations() -> None:
    """
    Run all database migrations (idempotent).
    Creates tables and indexes if missing. Safe to run multiple times.
    """
    print("[MIGRATE] Starting database migrations...")

    with get_db_connection() as conn:
        if is_postgres():
            _run_postgres_migrations(conn)
        else:
            _run_sqlite_migrations(conn)
        _create_indexes(conn)

    print("[MIGRATE] All migrations complete!")


def _run_postgres_migrations(conn) -> None:
    """PostgreSQL-specific DDL."""
    print("[MIGRATE] Running PostgreSQL migrations...")

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            first_name TEXT,
            last_name TEXT,
            display_name TEXT,
            created_at TEXT NOT NULL
        )
    """)

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS projects (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'ACTIVE',
            created_by INTEGER REFERENCES users(id),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS project_members (
            id SERIAL PRIMARY KEY,
            project_id INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL,
            role TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            invited_by INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(project_id, user_id)
        )
    """)

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS notification_outbox (
            id SERIAL PRIMARY KEY,
            scope_kind TEXT NOT NULL,
            scope_id INTEGER NOT NULL,
            event TEXT NOT NULL,
            payload_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            claimed_at TEXT,
            delivered_at TEXT,
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT
        )
    """)


def _run_sqlite_migrations(conn) -> None:
    """SQLite-specific DDL."""
    print("[MIGRATE] Running SQLite migrations...")

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            first_name TEXT,
            last_name TEXT,
            display_name TEXT,
            created_at TEXT NOT NULL
        )
    """)

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            type TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'ACTIVE',
            created_by INTEGER REFERENCES users(id),
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS project_members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL,
            role TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            invited_by INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(project_id, user_id)
        )
    """)

    execute_query(conn, """
        CREATE TABLE IF NOT EXISTS notification_outbox (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            scope_kind TEXT NOT NULL,
            scope_id INTEGER NOT NULL,
            event TEXT NOT NULL,
            payload_json TEXT NOT NULL,
            created_at TEXT NOT NULL,
            claimed_at TEXT,
            delivered_at TEXT,
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT
        )
    """)


def _create_indexes(conn) -> None:
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_project_members_user ON project_members(user_id)")
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_projects_status ON projects(status)")
    execute_query(conn, "CREATE INDEX IF NOT EXISTS idx_outbox_pending ON notification_outbox(delivered_at)")
    print("[MIGRATE] Ensured indexes on project_members, projects, notification_outbox")


if __name__ == "__main__":
    run_migrations()
