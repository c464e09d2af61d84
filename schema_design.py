"""
ProjectFlow relational schema and migrations.

Tables:
    users                         accounts (email + PBKDF2 password hash, role)
    clients                       customer contacts, owned by a user
    projects                      work items grouped per client
    tasks                         project tasks; subtasks via parent_task_id
    project_finance               one budget row per project
    project_finance_transactions  income / expense ledger entries
    documents                     metadata for objects in the "documents" bucket
    code_snippets                 reusable code fragments tagged by language

Every user-facing row carries ``owner_id`` and all queries are scoped to it.
Ids are text UUIDs; timestamps are ISO-8601 UTC strings written by the app.

Usage:
    python schema_design.py --db projectflow.sqlite          # create / migrate
    python schema_design.py --db projectflow.sqlite --check  # integrity report
"""

import argparse
import logging
import sqlite3
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


_DDL_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    description TEXT,
    applied_at  TEXT    DEFAULT (datetime('now'))
);
"""

_DDL_001_CORE = """
CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    email         TEXT NOT NULL UNIQUE,
    full_name     TEXT,
    password_hash TEXT NOT NULL,
    password_salt TEXT NOT NULL,
    role          TEXT NOT NULL DEFAULT 'member'
                  CHECK (role IN ('admin', 'manager', 'member')),
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS clients (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    company     TEXT,
    email       TEXT,
    phone       TEXT,
    notes       TEXT,
    status      TEXT NOT NULL DEFAULT 'active'
                CHECK (status IN ('active', 'inactive')),
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    description TEXT,
    status      TEXT NOT NULL DEFAULT 'planning'
                CHECK (status IN ('planning', 'in_progress', 'on_hold',
                                  'completed', 'cancelled')),
    start_date  TEXT,
    end_date    TEXT,
    client_id   TEXT REFERENCES clients(id) ON DELETE SET NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id             TEXT PRIMARY KEY,
    owner_id       TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    project_id     TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    parent_task_id TEXT REFERENCES tasks(id) ON DELETE CASCADE,
    title          TEXT NOT NULL,
    description    TEXT,
    status         TEXT NOT NULL DEFAULT 'to_do'
                   CHECK (status IN ('to_do', 'in_progress', 'done', 'blocked')),
    priority       TEXT NOT NULL DEFAULT 'medium'
                   CHECK (priority IN ('low', 'medium', 'high')),
    due_date       TEXT,
    assignee       TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_finance (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    project_id  TEXT NOT NULL UNIQUE REFERENCES projects(id) ON DELETE CASCADE,
    budget      REAL NOT NULL DEFAULT 0 CHECK (budget >= 0),
    received    REAL NOT NULL DEFAULT 0 CHECK (received >= 0),
    spent       REAL NOT NULL DEFAULT 0 CHECK (spent >= 0),
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS project_finance_transactions (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    project_id  TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    type        TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    amount      REAL NOT NULL CHECK (amount > 0),
    description TEXT NOT NULL,
    date        TEXT NOT NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS documents (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    file_path   TEXT NOT NULL,
    file_type   TEXT,
    file_size   INTEGER NOT NULL DEFAULT 0,
    project_id  TEXT REFERENCES projects(id) ON DELETE SET NULL,
    task_id     TEXT REFERENCES tasks(id) ON DELETE SET NULL,
    created_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS code_snippets (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title       TEXT NOT NULL,
    language    TEXT NOT NULL,
    code        TEXT NOT NULL,
    project_id  TEXT REFERENCES projects(id) ON DELETE SET NULL,
    task_id     TEXT REFERENCES tasks(id) ON DELETE SET NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_DDL_002_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_clients_owner      ON clients(owner_id, name);
CREATE INDEX IF NOT EXISTS idx_projects_owner     ON projects(owner_id, created_at);
CREATE INDEX IF NOT EXISTS idx_projects_client    ON projects(client_id);
CREATE INDEX IF NOT EXISTS idx_tasks_project      ON tasks(project_id, status);
CREATE INDEX IF NOT EXISTS idx_tasks_owner_due    ON tasks(owner_id, due_date);
CREATE INDEX IF NOT EXISTS idx_tasks_parent       ON tasks(parent_task_id);
CREATE INDEX IF NOT EXISTS idx_txn_owner_date     ON project_finance_transactions(owner_id, date);
CREATE INDEX IF NOT EXISTS idx_txn_project        ON project_finance_transactions(project_id);
CREATE INDEX IF NOT EXISTS idx_documents_owner    ON documents(owner_id, created_at);
CREATE INDEX IF NOT EXISTS idx_snippets_owner     ON code_snippets(owner_id, language);
"""

# Migration SQL ordered by version number.
# Each entry: (version, description, sql)
_MIGRATIONS = [
    (1, "001_core_tables: users, clients, projects, tasks, finance, documents, snippets",
     _DDL_001_CORE),
    (2, "002_indexes: owner/date lookup indexes", _DDL_002_INDEXES),
]

EXPECTED_TABLES = (
    "users", "clients", "projects", "tasks", "project_finance",
    "project_finance_transactions", "documents", "code_snippets",
)


def _current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0
    except sqlite3.OperationalError:
        return 0


def migrate(conn: sqlite3.Connection) -> int:
    """Apply all pending migrations in order.

    Idempotent: already-applied migrations are skipped. The schema_version
    table is created if absent.

    Returns:
        Number of migrations applied in this call (0 if already up to date).
    """
    conn.execute(_DDL_SCHEMA_VERSION)
    conn.commit()

    current = _current_version(conn)
    applied = 0

    for version, description, sql in _MIGRATIONS:
        if version <= current:
            continue
        conn.executescript(sql)
        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (version, description),
        )
        conn.commit()
        logger.info("Applied migration %d: %s", version, description)
        applied += 1

    return applied


def create_database(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the database and run all migrations.

    Returns:
        An open sqlite3.Connection with WAL mode, foreign keys and all
        migrations applied.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    migrate(conn)
    return conn


def check_database_integrity(conn: sqlite3.Connection) -> dict:
    """Run SQLite integrity checks, foreign key validation and table presence.

    Returns:
        Dict with keys: integrity_ok (bool), fk_ok (bool), tables_ok (bool),
        details (list[str]).
    """
    details: list[str] = []

    messages = [r[0] for r in conn.execute("PRAGMA integrity_check").fetchall()]
    integrity_ok = messages == ["ok"]
    details.extend(f"integrity_check: {m}" for m in messages)

    fk_violations = conn.execute("PRAGMA foreign_key_check").fetchall()
    fk_ok = not fk_violations
    details.append(
        "foreign_key_check: ok" if fk_ok
        else f"foreign_key_check: {len(fk_violations)} violation(s)"
    )

    present = {
        r[0] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
    }
    missing = [t for t in EXPECTED_TABLES if t not in present]
    tables_ok = not missing
    details.append("tables: ok" if tables_ok else f"tables: missing {', '.join(missing)}")

    return {
        "integrity_ok": integrity_ok,
        "fk_ok": fk_ok,
        "tables_ok": tables_ok,
        "details": details,
    }


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create or check the ProjectFlow database")
    parser.add_argument("--db", type=Path, default=Path("projectflow.sqlite"),
                        help="Database path (default: projectflow.sqlite)")
    parser.add_argument("--check", action="store_true",
                        help="Run integrity checks instead of migrating")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    conn = create_database(args.db)
    try:
        if args.check:
            report = check_database_integrity(conn)
            for line in report["details"]:
                print(line)
            ok = report["integrity_ok"] and report["fk_ok"] and report["tables_ok"]
            return 0 if ok else 1
        print(f"Database ready at {args.db} (schema version {_current_version(conn)})")
        return 0
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
