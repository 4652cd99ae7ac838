"""Domain model - the applicant record and its embedded audit trail."""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime, JSON, Text, UniqueConstraint

from recruitflow.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Applicant(Base):
    """
    An applicant moves forward through the stage catalog, one stage at a time.

    Invariants enforced here:
    - (unique_code, current_stage) is unique across all rows (store-level constraint)
    - Every UPDATE is conditional on ``version`` (optimistic concurrency)
    - audit_log lives in the same row, so a mutation and its audit entry commit together
    """
    __tablename__ = "applicants"
    __table_args__ = (
        UniqueConstraint("unique_code", "current_stage", name="uq_applicant_code_per_stage"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)
    unique_code = Column(String, nullable=False, index=True)
    contact_number = Column(String, nullable=True)
    gender = Column(String, nullable=True)
    college = Column(String, nullable=True)
    branch = Column(String, nullable=True)
    year = Column(Integer, nullable=True)
    email = Column(String, nullable=True)

    current_stage = Column(String, nullable=False, index=True)
    round_within_stage = Column(Integer, nullable=False, default=0)

    # category name -> 0..100; entries from earlier stages are kept after promotion
    scores = Column(JSON, nullable=False, default=dict)
    notes = Column(Text, nullable=False, default="")

    # Append-only list of audit entries (see models.audit.build_audit_entry)
    audit_log = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}

    def snapshot(self) -> dict:
        """Identifying fields, as recorded in audit metadata."""
        return {
            "name": self.name,
            "uniqueCode": self.unique_code,
            "stage": self.current_stage,
        }
