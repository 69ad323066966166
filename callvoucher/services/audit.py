import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from callvoucher.core.database import SessionFactory, transaction
from callvoucher.models import AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    action: str
    entity_type: str
    entity_id: str
    details: dict = field(default_factory=dict)
    admin_user_id: Optional[UUID] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def log_event(db: Session, event: AuditEvent) -> None:
    db.add(
        AuditLog(
            action=event.action,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            details=event.details,
            admin_user_id=event.admin_user_id,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
        )
    )


class AuditSink(ABC):
    """Receives audit events. emit() must never raise or block the caller."""

    def emit(
        self,
        action: str,
        entity_type: str,
        entity_id: object,
        details: dict | None = None,
        admin_user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.submit(
            AuditEvent(
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                details=details or {},
                admin_user_id=admin_user_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    @abstractmethod
    def submit(self, event: AuditEvent) -> None:
        ...

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


_STOP = object()


class QueuedAuditSink(AuditSink):
    """Writes events to system_logs from a background thread."""

    def __init__(self, session_factory: SessionFactory, maxsize: int = 1000):
        self._session_factory = session_factory
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._worker = threading.Thread(target=self._run, name="audit-sink", daemon=True)
        self._worker.start()

    def submit(self, event: AuditEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning(
                "Audit queue full; dropping %s for %s %s",
                event.action,
                event.entity_type,
                event.entity_id,
            )

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                with transaction(self._session_factory, "audit") as db:
                    log_event(db, item)
            except Exception:
                logger.exception("Failed to write audit event %s", getattr(item, "action", item))
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        if not self._worker.is_alive():
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning(
                "Audit queue still full after %.1fs; abandoning %s pending events",
                timeout,
                self._queue.qsize(),
            )
            return
        self._worker.join(timeout)
