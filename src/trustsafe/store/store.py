"""TrustStore - SQLite persistence for the Trust & Safety Engine."""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, UTC
from typing import Iterator, List, Optional

from trustsafe.errors import AppealAlreadyPendingError, ConcurrentUpdateError, ConflictError
from trustsafe.reports.models import IncidentRecord, ReportRecord, ReportStatus
from trustsafe.scoring.models import BadgeType
from trustsafe.store.models import (
    ActorRecord,
    ActorRole,
    AppealRecord,
    AppealStatus,
    BadgeRecord,
    BookingOutcomeRecord,
    SuspensionKind,
    SuspensionRecord,
    ViolationCategory,
    ViolationRecord,
)
from trustsafe.store.schema import SCHEMA


logger = logging.getLogger(__name__)


class TrustStore:
    """
    Document-style SQLite store.

    Each record is kept as JSON next to the columns used for lookups and
    uniqueness rules. Writes grouped in `transaction()` commit or roll
    back together; actor rows are updated with compare-and-set on their
    `version` column.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database. If None, uses in-memory DB.
        """
        self.db_path = db_path or ":memory:"

        self._lock = threading.RLock()
        self._local = threading.local()

        # Keep persistent connection for in-memory DBs
        self._conn: Optional[sqlite3.Connection] = None
        if self.db_path == ":memory:":
            self._conn = self._connect()

        self._init_db()

        logger.info(f"Trust store initialized: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly
        return sqlite3.connect(
            self.db_path,
            isolation_level=None,
            check_same_thread=False,
            timeout=10.0,
        )

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection (the open transaction's, if any)."""
        tx_conn = getattr(self._local, "conn", None)
        if tx_conn is not None:
            return tx_conn
        if self._conn:
            return self._conn
        return self._connect()

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        """Close connection if not persistent and not in a transaction."""
        if conn is self._conn or conn is getattr(self._local, "conn", None):
            return
        conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Group writes atomically.

        Nested calls join the outer transaction. Any exception rolls
        everything back and propagates.
        """
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        with self._lock:
            conn = self._conn or self._connect()
            self._local.conn = conn
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                self._local.conn = None
                if conn is not self._conn:
                    conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._lock:
            conn = self._get_connection()
            for statement in SCHEMA:
                conn.execute(statement)
            self._close_connection(conn)

    def _execute(self, sql: str, params: tuple = ()) -> int:
        """Run a write statement and return the affected row count."""
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(sql, params)
                return cursor.rowcount
            finally:
                self._close_connection(conn)

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[tuple]:
        with self._lock:
            conn = self._get_connection()
            try:
                return conn.execute(sql, params).fetchone()
            finally:
                self._close_connection(conn)

    def _fetchall(self, sql: str, params: tuple = ()) -> List[tuple]:
        with self._lock:
            conn = self._get_connection()
            try:
                return conn.execute(sql, params).fetchall()
            finally:
                self._close_connection(conn)

    # ---- Actors ----

    def get_actor(self, actor_id: str) -> Optional[ActorRecord]:
        """Get an actor, or None if it was never touched."""
        row = self._fetchone("SELECT version, data FROM actors WHERE actor_id = ?", (actor_id,))
        if row:
            actor = ActorRecord.model_validate_json(row[1])
            # The column is authoritative for compare-and-set
            actor.version = row[0]
            return actor
        return None

    def ensure_actor(self, actor_id: str, role: Optional[ActorRole] = None) -> ActorRecord:
        """Get an actor, creating it with score 100 / Safe on first touch."""
        actor = ActorRecord(actor_id=actor_id, role=role or ActorRole.CLIENT)
        inserted = self._execute(
            "INSERT OR IGNORE INTO actors (actor_id, version, status, data) VALUES (?, ?, ?, ?)",
            (actor.actor_id, actor.version, actor.status.value, actor.model_dump_json()),
        )
        if inserted:
            logger.info(f"Actor created: {actor_id} [{actor.role.value}]")
        return self.get_actor(actor_id)

    def save_actor(self, actor: ActorRecord, expected_version: int) -> ActorRecord:
        """
        Compare-and-set write of an actor record.

        Raises:
            ConcurrentUpdateError: The stored version moved since it was read
        """
        updated = actor.model_copy(update={
            "version": expected_version + 1,
            "updated_at": datetime.now(UTC),
        })
        rows = self._execute(
            """UPDATE actors SET version = ?, status = ?, data = ?
               WHERE actor_id = ? AND version = ?""",
            (
                updated.version,
                updated.status.value,
                updated.model_dump_json(),
                updated.actor_id,
                expected_version,
            ),
        )
        if rows == 0:
            raise ConcurrentUpdateError(
                f"Actor {actor.actor_id} changed since version {expected_version}",
                {"actor_id": actor.actor_id, "expected_version": expected_version},
            )
        return updated

    def list_actor_ids(self) -> List[str]:
        rows = self._fetchall("SELECT actor_id FROM actors ORDER BY rowid")
        return [row[0] for row in rows]

    # ---- Violations (insert only) ----

    def insert_violation(self, violation: ViolationRecord) -> None:
        self._execute(
            """INSERT INTO violations (violation_id, actor_id, category, created_at, data)
               VALUES (?, ?, ?, ?, ?)""",
            (
                violation.violation_id,
                violation.actor_id,
                violation.category.value,
                violation.created_at.isoformat(),
                violation.model_dump_json(),
            ),
        )

    def list_violations(
        self,
        actor_id: str,
        category: Optional[ViolationCategory] = None,
    ) -> List[ViolationRecord]:
        """Violations for an actor in recording order."""
        if category is None:
            rows = self._fetchall(
                "SELECT data FROM violations WHERE actor_id = ? ORDER BY rowid",
                (actor_id,),
            )
        else:
            rows = self._fetchall(
                "SELECT data FROM violations WHERE actor_id = ? AND category = ? ORDER BY rowid",
                (actor_id, category.value),
            )
        return [ViolationRecord.model_validate_json(row[0]) for row in rows]

    def count_violations_since(
        self,
        actor_id: str,
        category: ViolationCategory,
        since: datetime,
    ) -> int:
        return sum(
            1 for v in self.list_violations(actor_id, category)
            if v.created_at >= since
        )

    # ---- Reports ----

    def insert_report(self, report: ReportRecord) -> None:
        self._execute(
            """INSERT INTO reports (report_id, reporter_id, reported_id, status, severity, data)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                report.report_id,
                report.reporter_id,
                report.reported_id,
                report.status.value,
                report.severity.value,
                report.model_dump_json(),
            ),
        )

    def update_report(self, report: ReportRecord, expected_status: ReportStatus) -> None:
        """
        Write a report only if its status has not moved since it was read.

        Raises:
            ConflictError: Another writer changed the report first
        """
        rows = self._execute(
            """UPDATE reports SET status = ?, severity = ?, data = ?
               WHERE report_id = ? AND status = ?""",
            (
                report.status.value,
                report.severity.value,
                report.model_dump_json(),
                report.report_id,
                expected_status.value,
            ),
        )
        if rows == 0:
            raise ConflictError(
                f"Report {report.report_id} is no longer {expected_status.value}",
                {"report_id": report.report_id},
            )

    def get_report(self, report_id: str) -> Optional[ReportRecord]:
        row = self._fetchone("SELECT data FROM reports WHERE report_id = ?", (report_id,))
        if row:
            return ReportRecord.model_validate_json(row[0])
        return None

    def list_reports_against(self, actor_id: str) -> List[ReportRecord]:
        rows = self._fetchall(
            "SELECT data FROM reports WHERE reported_id = ? ORDER BY rowid",
            (actor_id,),
        )
        return [ReportRecord.model_validate_json(row[0]) for row in rows]

    def list_reports_by(self, actor_id: str) -> List[ReportRecord]:
        rows = self._fetchall(
            "SELECT data FROM reports WHERE reporter_id = ? ORDER BY rowid",
            (actor_id,),
        )
        return [ReportRecord.model_validate_json(row[0]) for row in rows]

    # ---- Incidents (outbox) ----

    def insert_incident(self, incident: IncidentRecord) -> bool:
        """Insert an incident; returns False if the report already has one."""
        rows = self._execute(
            """INSERT OR IGNORE INTO incidents (incident_id, report_id, delivered, data)
               VALUES (?, ?, ?, ?)""",
            (
                incident.incident_id,
                incident.report_id,
                int(incident.delivered),
                incident.model_dump_json(),
            ),
        )
        return rows > 0

    def update_incident(self, incident: IncidentRecord) -> None:
        self._execute(
            "UPDATE incidents SET delivered = ?, data = ? WHERE incident_id = ?",
            (int(incident.delivered), incident.model_dump_json(), incident.incident_id),
        )

    def get_incident_for_report(self, report_id: str) -> Optional[IncidentRecord]:
        row = self._fetchone("SELECT data FROM incidents WHERE report_id = ?", (report_id,))
        if row:
            return IncidentRecord.model_validate_json(row[0])
        return None

    def list_pending_incidents(self, limit: int = 100) -> List[IncidentRecord]:
        rows = self._fetchall(
            "SELECT data FROM incidents WHERE delivered = 0 ORDER BY rowid LIMIT ?",
            (limit,),
        )
        return [IncidentRecord.model_validate_json(row[0]) for row in rows]

    def count_pending_incidents(self) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM incidents WHERE delivered = 0")
        return row[0]

    # ---- Suspensions ----

    def insert_suspension(self, record: SuspensionRecord) -> None:
        """
        Raises:
            ConcurrentUpdateError: Another active record was opened concurrently
        """
        try:
            self._execute(
                """INSERT INTO suspensions (suspension_id, actor_id, kind, active, data)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    record.suspension_id,
                    record.actor_id,
                    record.kind.value,
                    int(record.active),
                    record.model_dump_json(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConcurrentUpdateError(
                f"Actor {record.actor_id} already has an active suspension record",
                {"actor_id": record.actor_id},
            ) from e

    def update_suspension(self, record: SuspensionRecord) -> None:
        self._execute(
            "UPDATE suspensions SET active = ?, data = ? WHERE suspension_id = ?",
            (int(record.active), record.model_dump_json(), record.suspension_id),
        )

    def get_suspension(self, suspension_id: str) -> Optional[SuspensionRecord]:
        row = self._fetchone(
            "SELECT data FROM suspensions WHERE suspension_id = ?",
            (suspension_id,),
        )
        if row:
            return SuspensionRecord.model_validate_json(row[0])
        return None

    def get_active_suspension(self, actor_id: str) -> Optional[SuspensionRecord]:
        """The actor's open probation or suspension record, if any."""
        row = self._fetchone(
            "SELECT data FROM suspensions WHERE actor_id = ? AND active = 1",
            (actor_id,),
        )
        if row:
            return SuspensionRecord.model_validate_json(row[0])
        return None

    def list_suspensions(self, actor_id: str) -> List[SuspensionRecord]:
        rows = self._fetchall(
            "SELECT data FROM suspensions WHERE actor_id = ? ORDER BY rowid",
            (actor_id,),
        )
        return [SuspensionRecord.model_validate_json(row[0]) for row in rows]

    def list_active_suspensions(self, kind: Optional[SuspensionKind] = None) -> List[SuspensionRecord]:
        if kind is None:
            rows = self._fetchall("SELECT data FROM suspensions WHERE active = 1 ORDER BY rowid")
        else:
            rows = self._fetchall(
                "SELECT data FROM suspensions WHERE active = 1 AND kind = ? ORDER BY rowid",
                (kind.value,),
            )
        return [SuspensionRecord.model_validate_json(row[0]) for row in rows]

    # ---- Appeals ----

    def insert_appeal(self, appeal: AppealRecord) -> None:
        """
        Raises:
            AppealAlreadyPendingError: The actor already has a pending appeal
        """
        try:
            self._execute(
                """INSERT INTO appeals (appeal_id, actor_id, suspension_id, status, data)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    appeal.appeal_id,
                    appeal.actor_id,
                    appeal.suspension_id,
                    appeal.status.value,
                    appeal.model_dump_json(),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise AppealAlreadyPendingError(
                f"Actor {appeal.actor_id} already has a pending appeal",
                {"suspension_id": appeal.suspension_id, "actor_id": appeal.actor_id},
            ) from e

    def update_appeal(self, appeal: AppealRecord, expected_status: AppealStatus) -> None:
        rows = self._execute(
            "UPDATE appeals SET status = ?, data = ? WHERE appeal_id = ? AND status = ?",
            (
                appeal.status.value,
                appeal.model_dump_json(),
                appeal.appeal_id,
                expected_status.value,
            ),
        )
        if rows == 0:
            raise ConflictError(
                f"Appeal {appeal.appeal_id} is no longer {expected_status.value}",
                {"appeal_id": appeal.appeal_id},
            )

    def get_appeal(self, appeal_id: str) -> Optional[AppealRecord]:
        row = self._fetchone("SELECT data FROM appeals WHERE appeal_id = ?", (appeal_id,))
        if row:
            return AppealRecord.model_validate_json(row[0])
        return None

    def list_appeals(self, actor_id: str) -> List[AppealRecord]:
        rows = self._fetchall(
            "SELECT data FROM appeals WHERE actor_id = ? ORDER BY rowid",
            (actor_id,),
        )
        return [AppealRecord.model_validate_json(row[0]) for row in rows]

    def supersede_pending_appeals(
        self,
        suspension_id: str,
        resolved_at: datetime,
        note: str,
    ) -> List[AppealRecord]:
        """Close the pending appeals of a record that is no longer active."""
        rows = self._fetchall(
            "SELECT data FROM appeals WHERE suspension_id = ? AND status = ?",
            (suspension_id, AppealStatus.PENDING.value),
        )
        superseded = []
        for row in rows:
            appeal = AppealRecord.model_validate_json(row[0]).model_copy(update={
                "status": AppealStatus.SUPERSEDED,
                "resolved_at": resolved_at,
                "resolution_note": note,
            })
            self.update_appeal(appeal, AppealStatus.PENDING)
            superseded.append(appeal)
        return superseded

    def list_pending_appeals(self) -> List[AppealRecord]:
        rows = self._fetchall(
            "SELECT data FROM appeals WHERE status = ? ORDER BY rowid",
            (AppealStatus.PENDING.value,),
        )
        return [AppealRecord.model_validate_json(row[0]) for row in rows]

    # ---- Badges (append only) ----

    def insert_badge(self, badge: BadgeRecord) -> bool:
        rows = self._execute(
            "INSERT OR IGNORE INTO badges (actor_id, badge_type, data) VALUES (?, ?, ?)",
            (badge.actor_id, badge.badge_type.value, badge.model_dump_json()),
        )
        return rows > 0

    def list_badges(self, actor_id: str) -> List[BadgeRecord]:
        rows = self._fetchall(
            "SELECT data FROM badges WHERE actor_id = ? ORDER BY rowid",
            (actor_id,),
        )
        return [BadgeRecord.model_validate_json(row[0]) for row in rows]

    def badge_types(self, actor_id: str) -> List[BadgeType]:
        return [badge.badge_type for badge in self.list_badges(actor_id)]

    # ---- Booking outcomes ----

    def get_booking_outcome(self, booking_id: str) -> Optional[BookingOutcomeRecord]:
        row = self._fetchone(
            "SELECT data FROM booking_outcomes WHERE booking_id = ?",
            (booking_id,),
        )
        if row:
            return BookingOutcomeRecord.model_validate_json(row[0])
        return None

    def upsert_booking_outcome(self, record: BookingOutcomeRecord) -> None:
        self._execute(
            """INSERT INTO booking_outcomes (booking_id, actor_id, outcome, data)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(booking_id) DO UPDATE SET outcome = excluded.outcome, data = excluded.data""",
            (
                record.booking_id,
                record.actor_id,
                record.outcome.value,
                record.model_dump_json(),
            ),
        )

    def close(self) -> None:
        """Close persistent connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
