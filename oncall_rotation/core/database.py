# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""SQLAlchemy engine singleton and portable schema bootstrap."""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from oncall_rotation.core.config import settings
from oncall_rotation.core.logging import get_logger

logger = get_logger(__name__)


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite gets a shared-connection pool instead of sizing."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.POOL_SIZE,
        max_overflow=settings.MAX_OVERFLOW,
        pool_recycle=settings.POOL_RECYCLE,
    )


def _schema_statements(dialect: str) -> list[str]:
    serial = "SERIAL PRIMARY KEY" if dialect == "postgresql" else "INTEGER PRIMARY KEY AUTOINCREMENT"
    return [
        """
        CREATE TABLE IF NOT EXISTS sprints (
            sprint_index INTEGER PRIMARY KEY,
            sprint_name  VARCHAR(255) NOT NULL,
            start_date   DATE NOT NULL,
            end_date     DATE NOT NULL,
            created_at   VARCHAR(40) NOT NULL,
            updated_at   VARCHAR(40)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS rotation_members (
            discipline   VARCHAR(64) NOT NULL,
            user_id      VARCHAR(64) NOT NULL,
            display_name VARCHAR(255) NOT NULL,
            position     INTEGER NOT NULL,
            active       BOOLEAN NOT NULL DEFAULT TRUE,
            PRIMARY KEY (discipline, user_id)
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS overrides (
            id                  {serial},
            sprint_index        INTEGER NOT NULL,
            role                VARCHAR(64) NOT NULL,
            original_user_id    VARCHAR(64),
            replacement_user_id VARCHAR(64) NOT NULL,
            replacement_name    VARCHAR(255),
            requested_by        VARCHAR(64) NOT NULL,
            approved            BOOLEAN NOT NULL DEFAULT FALSE,
            approved_by         VARCHAR(64),
            approval_timestamp  VARCHAR(40),
            superseded_by       INTEGER,
            created_at          VARCHAR(40) NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_overrides_slot ON overrides (sprint_index, role)",
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_overrides_approved_slot ON overrides (sprint_index, role) WHERE approved",
        """
        CREATE TABLE IF NOT EXISTS current_state (
            id           INTEGER PRIMARY KEY,
            sprint_index INTEGER,
            assignments  TEXT NOT NULL,
            updated_at   VARCHAR(40) NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS audit_events (
            id          {serial},
            event_type  VARCHAR(64) NOT NULL,
            subject     VARCHAR(255) NOT NULL,
            details     TEXT,
            changed_by  VARCHAR(64),
            created_at  VARCHAR(40) NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_audit_events_type_subject ON audit_events (event_type, subject)",
        """
        CREATE TABLE IF NOT EXISTS cron_trigger_audits (
            id           VARCHAR(64) PRIMARY KEY,
            triggered_at VARCHAR(40) NOT NULL,
            scheduled_at VARCHAR(40),
            result       VARCHAR(20) NOT NULL,
            details      TEXT
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS notification_snapshots (
            id                     {serial},
            captured_at            VARCHAR(40) NOT NULL,
            discipline_assignments TEXT NOT NULL,
            hash                   VARCHAR(64) NOT NULL,
            delivery_status        VARCHAR(20) NOT NULL,
            delivery_reason        TEXT,
            trigger_ref            VARCHAR(64) REFERENCES cron_trigger_audits (id),
            next_delivery          VARCHAR(40)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_notification_snapshots_status ON notification_snapshots (delivery_status)",
    ]


def init_schema(target: Engine) -> None:
    """Create every table the service needs if it does not exist yet."""
    with target.begin() as conn:
        for statement in _schema_statements(target.dialect.name):
            conn.execute(text(statement))
    logger.info("Schema ready on dialect=%s", target.dialect.name)


engine = build_engine(settings.DATABASE_URL)
