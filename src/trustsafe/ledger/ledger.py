"""Audit Ledger - append-only, hash-chained record of enforcement decisions."""

import logging
import sqlite3
import threading
from typing import List, Optional

from trustsafe.ledger.models import AuditEvent, ChainReport, EventType, GENESIS_DIGEST


logger = logging.getLogger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS audit_events (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        event_id TEXT NOT NULL UNIQUE,
        event_type TEXT NOT NULL,
        actor_id TEXT,
        reference_id TEXT,
        digest TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_audit_actor ON audit_events(actor_id, event_type)",
    "CREATE INDEX IF NOT EXISTS idx_audit_reference ON audit_events(reference_id)",
]


class AuditLedger:
    """
    Every blocked message, violation, status change, suspension, appeal
    and report decision lands here, after the state change it describes
    has committed.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or ":memory:"
        self._lock = threading.Lock()

        self._conn: Optional[sqlite3.Connection] = None
        if self.db_path == ":memory:":
            self._conn = self._connect()

        with self._lock:
            conn = self._get_connection()
            for statement in SCHEMA:
                conn.execute(statement)
            self._close_connection(conn)

        # Head of the chain; appends are serialized on the lock
        self._head = self._read_head()

        logger.info(f"Audit ledger initialized: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, isolation_level=None, check_same_thread=False)

    def _get_connection(self) -> sqlite3.Connection:
        return self._conn or self._connect()

    def _close_connection(self, conn: sqlite3.Connection) -> None:
        if conn is not self._conn:
            conn.close()

    def _rows(self, sql: str, params: tuple = ()) -> List[tuple]:
        conn = self._get_connection()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            self._close_connection(conn)

    def _read_head(self) -> str:
        rows = self._rows("SELECT digest FROM audit_events ORDER BY seq DESC LIMIT 1")
        return rows[0][0] if rows else GENESIS_DIGEST

    def log_event(
        self,
        event_type: EventType,
        payload: dict,
        actor_id: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> AuditEvent:
        """
        Append an event to the chain.

        Args:
            event_type: What was decided
            payload: JSON-serializable details
            actor_id: Account the event is about
            reference_id: Message, report, suspension or appeal ID

        Returns:
            The sealed AuditEvent
        """
        with self._lock:
            event = AuditEvent(
                event_type=event_type,
                actor_id=actor_id,
                reference_id=reference_id,
                payload=payload,
                prev_digest=self._head,
            ).sealed()

            conn = self._get_connection()
            try:
                conn.execute(
                    """INSERT INTO audit_events
                       (event_id, event_type, actor_id, reference_id, digest, data)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        event.event_id,
                        event.event_type.value,
                        event.actor_id,
                        event.reference_id,
                        event.digest,
                        event.model_dump_json(),
                    ),
                )
            finally:
                self._close_connection(conn)
            self._head = event.digest

        logger.debug(f"Audit event: {event_type.value} {actor_id or '-'} [{event.event_id}]")
        return event

    def get_entries_for_actor(
        self,
        actor_id: str,
        event_type: Optional[EventType] = None,
        limit: int = 50,
    ) -> List[AuditEvent]:
        """An actor's history, newest first."""
        if event_type is None:
            rows = self._rows(
                "SELECT data FROM audit_events WHERE actor_id = ? ORDER BY seq DESC LIMIT ?",
                (actor_id, limit),
            )
        else:
            rows = self._rows(
                """SELECT data FROM audit_events
                   WHERE actor_id = ? AND event_type = ?
                   ORDER BY seq DESC LIMIT ?""",
                (actor_id, event_type.value, limit),
            )
        return [AuditEvent.model_validate_json(row[0]) for row in rows]

    def get_entries_by_reference(self, reference_id: str) -> List[AuditEvent]:
        """Everything decided about one message, report, suspension or appeal, oldest first."""
        rows = self._rows(
            "SELECT data FROM audit_events WHERE reference_id = ? ORDER BY seq",
            (reference_id,),
        )
        return [AuditEvent.model_validate_json(row[0]) for row in rows]

    def validate_chain(self) -> ChainReport:
        """
        Walk the chain from the first event.

        An event is bad when its indexed digest differs from the one in
        its document, when its content no longer hashes to that digest,
        or when it does not point at the digest of the event before it.
        """
        expected_prev = GENESIS_DIGEST
        checked = 0

        for seq, digest, data in self._rows("SELECT seq, digest, data FROM audit_events ORDER BY seq"):
            event = AuditEvent.model_validate_json(data)
            reason = None
            if event.prev_digest != expected_prev:
                reason = f"links to {event.prev_digest[:12]}, expected {expected_prev[:12]}"
            elif event.digest != digest or event.expected_digest() != digest:
                reason = "content does not match its digest"

            if reason is not None:
                logger.warning(f"Audit chain broken at seq {seq}: {reason}")
                return ChainReport(is_valid=False, checked=checked, broken_at_seq=seq, reason=reason)

            expected_prev = digest
            checked += 1

        return ChainReport(is_valid=True, checked=checked)

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
