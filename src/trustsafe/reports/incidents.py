"""Incident dispatcher - at-least-once delivery of critical-report incidents.

Incidents are written in the same transaction as the report that raised
them (outbox). Delivery runs after commit on a small worker pool; a
failed delivery stays pending and is retried by the next flush.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, UTC
from typing import Callable, Optional
import httpx

from trustsafe.reports.models import IncidentRecord


logger = logging.getLogger(__name__)


Notifier = Callable[[IncidentRecord], None]


class WebhookNotifier:
    """
    Posts incidents to the moderation webhook.

    Any HTTP failure propagates so the dispatcher keeps the incident
    pending for the next flush.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    def __call__(self, incident: IncidentRecord) -> None:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(self.url, json=incident.model_dump(mode="json"))
            response.raise_for_status()

        logger.debug(f"Incident posted: {incident.incident_id} -> {response.status_code}")


class IncidentDispatcher:
    """Delivers pending incidents to the moderation notifier."""

    def __init__(
        self,
        store,
        notifier: Optional[Notifier] = None,
        max_workers: int = 2,
        batch_size: int = 100,
    ):
        self.store = store
        self.notifier = notifier
        self.batch_size = batch_size
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="incident-dispatch",
        )
        self._flush_lock = threading.Lock()

    def dispatch(self) -> Optional[Future]:
        """Schedule a background flush. Never blocks the caller."""
        if self.notifier is None:
            return None
        return self._executor.submit(self._flush_in_background)

    def _flush_in_background(self) -> int:
        try:
            return self.flush()
        except Exception as e:
            # Background worker: the outbox row stays pending
            logger.error(f"Incident flush failed: {e}")
            return 0

    def flush(self) -> int:
        """
        Try to deliver every pending incident.

        Returns:
            Number of incidents delivered in this pass
        """
        if self.notifier is None:
            logger.debug("No incident notifier configured, leaving incidents pending")
            return 0

        delivered = 0
        with self._flush_lock:
            for incident in self.store.list_pending_incidents(self.batch_size):
                attempt = incident.model_copy(update={"attempts": incident.attempts + 1})
                try:
                    self.notifier(attempt)
                except Exception as e:
                    logger.warning(
                        f"Incident delivery failed: {incident.incident_id} "
                        f"(attempt {attempt.attempts}): {e}"
                    )
                    self.store.update_incident(attempt.model_copy(update={"last_error": str(e)}))
                    continue

                self.store.update_incident(attempt.model_copy(update={
                    "delivered": True,
                    "delivered_at": datetime.now(UTC),
                    "last_error": None,
                }))
                delivered += 1
                logger.info(f"Incident delivered: {incident.incident_id} for report {incident.report_id}")

        return delivered

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
