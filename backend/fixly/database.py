import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from fixly.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- USERS
-- ============================================================
CREATE TABLE IF NOT EXISTS users (
    id             TEXT PRIMARY KEY,
    username       TEXT NOT NULL UNIQUE,
    name           TEXT NOT NULL,
    email          TEXT NOT NULL UNIQUE,
    password_hash  TEXT NOT NULL,
    role           TEXT NOT NULL CHECK(role IN ('hirer','fixer','admin')),
    city           TEXT,
    skills         TEXT NOT NULL DEFAULT '[]',
    rating_average REAL NOT NULL DEFAULT 0,
    rating_count   INTEGER NOT NULL DEFAULT 0,
    jobs_posted    INTEGER NOT NULL DEFAULT 0,
    jobs_completed INTEGER NOT NULL DEFAULT 0,
    total_earnings REAL NOT NULL DEFAULT 0,
    banned         INTEGER NOT NULL DEFAULT 0,
    created_at     TEXT NOT NULL
);

-- ============================================================
-- JOBS
-- One row per job aggregate. Embedded collections live in `document`;
-- the scalar columns mirror it for filtering and sorting.
-- ============================================================
CREATE TABLE IF NOT EXISTS jobs (
    id               TEXT PRIMARY KEY,
    version          INTEGER NOT NULL DEFAULT 1,
    title            TEXT NOT NULL,
    description      TEXT NOT NULL,
    status           TEXT NOT NULL DEFAULT 'open'
                     CHECK(status IN ('open','in_progress','completed','cancelled','disputed')),
    created_by       TEXT NOT NULL REFERENCES users(id),
    assigned_to      TEXT REFERENCES users(id),
    city             TEXT NOT NULL,
    state            TEXT NOT NULL,
    skills           TEXT NOT NULL,
    urgency          TEXT NOT NULL CHECK(urgency IN ('asap','flexible','scheduled')),
    job_type         TEXT NOT NULL CHECK(job_type IN ('one-time','recurring')),
    experience_level TEXT NOT NULL CHECK(experience_level IN ('beginner','intermediate','expert')),
    budget_type      TEXT NOT NULL CHECK(budget_type IN ('fixed','negotiable','hourly')),
    budget_amount    REAL,
    featured         INTEGER NOT NULL DEFAULT 0,
    featured_until   TEXT,
    deadline         TEXT NOT NULL,
    views            INTEGER NOT NULL DEFAULT 0,
    document         TEXT NOT NULL,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_status_created ON jobs(status, created_at);
CREATE INDEX IF NOT EXISTS idx_jobs_created_by ON jobs(created_by, status);
CREATE INDEX IF NOT EXISTS idx_jobs_assigned_to ON jobs(assigned_to, status);
CREATE INDEX IF NOT EXISTS idx_jobs_city ON jobs(city, status);
CREATE INDEX IF NOT EXISTS idx_jobs_deadline ON jobs(deadline, status);
CREATE INDEX IF NOT EXISTS idx_jobs_featured ON jobs(status, featured, created_at);
CREATE INDEX IF NOT EXISTS idx_jobs_budget ON jobs(budget_amount, status);
"""


MIGRATIONS = [
    # v0.2: popularity sort
    "CREATE INDEX IF NOT EXISTS idx_jobs_views ON jobs(views, status)",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # already applied
    conn.close()
