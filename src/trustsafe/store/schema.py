"""SQLite schema. Records are stored as JSON documents next to their lookup columns."""

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS actors (
        actor_id TEXT PRIMARY KEY,
        version INTEGER NOT NULL,
        status TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS violations (
        violation_id TEXT PRIMARY KEY,
        actor_id TEXT NOT NULL,
        category TEXT NOT NULL,
        created_at TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_violations_actor ON violations(actor_id, category)",
    """
    CREATE TABLE IF NOT EXISTS reports (
        report_id TEXT PRIMARY KEY,
        reporter_id TEXT NOT NULL,
        reported_id TEXT NOT NULL,
        status TEXT NOT NULL,
        severity TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_reports_reported ON reports(reported_id)",
    "CREATE INDEX IF NOT EXISTS idx_reports_reporter ON reports(reporter_id)",
    """
    CREATE TABLE IF NOT EXISTS incidents (
        incident_id TEXT PRIMARY KEY,
        report_id TEXT NOT NULL UNIQUE,
        delivered INTEGER NOT NULL DEFAULT 0,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS suspensions (
        suspension_id TEXT PRIMARY KEY,
        actor_id TEXT NOT NULL,
        kind TEXT NOT NULL,
        active INTEGER NOT NULL,
        data TEXT NOT NULL
    )
    """,
    # At most one active probation/suspension per actor
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_suspensions_active
        ON suspensions(actor_id) WHERE active = 1
    """,
    """
    CREATE TABLE IF NOT EXISTS appeals (
        appeal_id TEXT PRIMARY KEY,
        actor_id TEXT NOT NULL,
        suspension_id TEXT NOT NULL,
        status TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    # At most one pending appeal per actor
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_appeals_pending_actor
        ON appeals(actor_id) WHERE status = 'pending'
    """,
    "CREATE INDEX IF NOT EXISTS idx_appeals_suspension ON appeals(suspension_id)",
    """
    CREATE TABLE IF NOT EXISTS badges (
        actor_id TEXT NOT NULL,
        badge_type TEXT NOT NULL,
        data TEXT NOT NULL,
        PRIMARY KEY (actor_id, badge_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS booking_outcomes (
        booking_id TEXT PRIMARY KEY,
        actor_id TEXT NOT NULL,
        outcome TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
]
