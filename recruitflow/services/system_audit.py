"""
Best-effort writer for the system audit log.

A failed write is logged and dropped: it must never roll back, retry, or
block the applicant mutation it mirrors. Writes go through their own session
so they cannot share a transaction with the primary mutation.
"""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import sessionmaker

from recruitflow.models.actor import Actor
from recruitflow.models.audit import SystemAuditEvent
from recruitflow.models.enums import AuditAction

logger = logging.getLogger(__name__)

ENTITY_APPLICANT = "applicant"


class SystemAuditWriter:
    """
    Mirrors lifecycle events to the ``system_audit_events`` table.

    ``dispatch`` decides when the write runs. The API passes
    ``BackgroundTasks.add_task`` so the write happens after the response;
    without it the write runs inline.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        dispatch: Optional[Callable[..., Any]] = None,
    ):
        self.session_factory = session_factory
        self.dispatch = dispatch

    def record(
        self,
        action: AuditAction,
        entity_id: str,
        actor: Actor,
        meta: Optional[Dict[str, Any]] = None,
        entity_type: str = ENTITY_APPLICANT,
    ) -> None:
        event = {
            "action": action.value,
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "performed_by": actor.username or None,
            "ip": actor.ip,
            "meta": dict(meta or {}),
        }
        try:
            if self.dispatch is not None:
                self.dispatch(self._write, event)
            else:
                self._write(event)
        except Exception:
            logger.warning("Could not dispatch system audit event %s for %s", action.value, entity_id, exc_info=True)

    def _write(self, event: Dict[str, Any]) -> None:
        db = self.session_factory()
        try:
            db.add(SystemAuditEvent(**event))
            db.commit()
        except Exception:
            db.rollback()
            logger.warning(
                "System audit write failed for %s %s",
                event["action"], event["entity_id"], exc_info=True
            )
        finally:
            db.close()
