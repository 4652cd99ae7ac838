"""
Audit models.

Two trails exist:
- the per-applicant trail, embedded in ``Applicant.audit_log`` and destroyed with the row
- the system audit log, a separate table that outlives the applicants it mentions
"""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, String, Integer, DateTime, JSON

from recruitflow.database import Base
from recruitflow.models.domain import utcnow
from recruitflow.models.enums import AuditAction


class SystemAuditEvent(Base):
    """
    Record-independent mirror of every lifecycle mutation (and every export).

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    - Writing is best-effort and never blocks the mutation it mirrors
    """
    __tablename__ = "system_audit_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    action = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False, index=True)
    performed_by = Column(String, nullable=True)
    ip = Column(String, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)


def build_audit_entry(
    action: AuditAction,
    performed_by: Optional[str],
    meta: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build one entry for an applicant's embedded trail."""
    return {
        "action": action.value,
        "performedBy": performed_by or "",
        "timestamp": (timestamp or utcnow()).isoformat(),
        "meta": dict(meta or {}),
    }
