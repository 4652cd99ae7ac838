"""
Lifecycle engine that enforces the applicant pipeline invariants.

This is the core enforcement mechanism - every applicant mutation MUST go through here.
"""
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

import pydantic
from sqlalchemy import or_, text
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from recruitflow.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    field_errors,
)
from recruitflow.models.actor import Actor
from recruitflow.models.audit import build_audit_entry
from recruitflow.models.catalog import DEFAULT_CATALOG, StageCatalog
from recruitflow.models.domain import Applicant
from recruitflow.models.enums import AuditAction
from recruitflow.models.payloads import ApplicantCreate, ApplicantUpdate, AuditEntry
from recruitflow.services.export import ExportReport, build_report
from recruitflow.services.system_audit import SystemAuditWriter

logger = logging.getLogger(__name__)

T = TypeVar("T")
Payload = TypeVar("Payload", bound=pydantic.BaseModel)

# Fields an update may touch. current_stage is deliberately absent: only promote() moves stages.
UPDATABLE_FIELDS = (
    "name",
    "unique_code",
    "contact_number",
    "gender",
    "college",
    "branch",
    "year",
    "email",
    "notes",
    "round_within_stage",
)

SEARCH_COLUMNS = (
    Applicant.name,
    Applicant.unique_code,
    Applicant.contact_number,
    Applicant.college,
    Applicant.branch,
    Applicant.email,
)

DUPLICATE_CODE_MESSAGE = "Unique code already exists in this stage"


class ApplicantLifecycle:
    """Create, update, promote, delete and query applicants."""

    MAX_ATTEMPTS = 3

    def __init__(
        self,
        db: Session,
        catalog: StageCatalog = DEFAULT_CATALOG,
        system_audit: Optional[SystemAuditWriter] = None,
        timeout: Optional[float] = None,
        search_limit: int = 500,
    ):
        self.db = db
        self.catalog = catalog
        self.system_audit = system_audit
        self.timeout = timeout
        self.search_limit = search_limit

    def list_stages(self) -> List[Dict[str, object]]:
        return self.catalog.describe()

    def get(self, applicant_id: int) -> Applicant:
        with self._transaction():
            return self._load(applicant_id)

    def create(self, data: Union[ApplicantCreate, Dict[str, Any]], actor: Actor) -> Applicant:
        """
        Create an applicant in the requested stage (the first stage if none is given).

        Invariants:
        - The stage must be a member of the catalog
        - (unique_code, current_stage) must be free; the store's constraint is authoritative
        - The trail starts with exactly one CREATED entry
        """
        payload = self._parse(ApplicantCreate, data)
        stage = payload.current_stage if payload.current_stage is not None else self.catalog.initial
        if stage not in self.catalog:
            raise ValidationError(
                f"Unknown stage: {stage}",
                details={"errors": [{"field": "currentStage", "message": "not a known stage"}]}
            )
        scores = self._validate_scores(payload.scores or {})

        with self._transaction():
            if self._find_resident(payload.unique_code, stage) is not None:
                raise ConflictError(DUPLICATE_CODE_MESSAGE)

            applicant = Applicant(
                name=payload.name,
                unique_code=payload.unique_code,
                contact_number=payload.contact_number,
                gender=payload.gender.value if payload.gender else None,
                college=payload.college,
                branch=payload.branch,
                year=payload.year,
                email=payload.email,
                notes=payload.notes or "",
                current_stage=stage,
                round_within_stage=0,
                scores=scores,
            )
            meta = applicant.snapshot()
            applicant.audit_log = [build_audit_entry(AuditAction.CREATED, actor.username, meta)]
            self.db.add(applicant)
            self.db.commit()
            self.db.refresh(applicant)

        logger.info("Applicant %s created in %s by %r", applicant.id, stage, actor.username)
        self._mirror(AuditAction.CREATED, applicant.id, actor, meta)
        return applicant

    def update(
        self,
        applicant_id: int,
        data: Union[ApplicantUpdate, Dict[str, Any]],
        actor: Actor,
    ) -> Applicant:
        """
        Apply a partial update. Unsupplied fields are untouched; scores merge key by key.

        A changed unique_code is checked against the applicant's current stage.
        """
        payload = self._parse(ApplicantUpdate, data)
        changes = payload.model_dump(exclude_unset=True, mode="json")
        updated_fields = list(payload.model_dump(exclude_unset=True, by_alias=True).keys())
        scores = self._validate_scores(changes.pop("scores", None) or {})

        def apply():
            applicant = self._load(applicant_id)

            new_code = changes.get("unique_code")
            if new_code is not None and new_code != applicant.unique_code:
                if self._find_resident(new_code, applicant.current_stage) is not None:
                    raise ConflictError(DUPLICATE_CODE_MESSAGE)

            for field in UPDATABLE_FIELDS:
                if field in changes:
                    setattr(applicant, field, changes[field])
            if scores:
                applicant.scores = {**(applicant.scores or {}), **scores}

            meta = {**applicant.snapshot(), "updatedFields": updated_fields}
            self._append_entry(applicant, AuditAction.UPDATED, actor, meta)
            self.db.commit()
            self.db.refresh(applicant)
            return applicant, meta

        applicant, meta = self._with_retry(apply)
        logger.info("Applicant %s updated by %r: %s", applicant.id, actor.username, updated_fields)
        self._mirror(AuditAction.UPDATED, applicant.id, actor, meta)
        return applicant

    def promote(self, applicant_id: int, actor: Actor) -> Applicant:
        """
        Move an applicant to the next stage.

        Transition invariants:
        - Strictly forward, exactly one stage
        - The final stage (or a stage the catalog does not know) cannot be promoted
        - round_within_stage resets to 0; scores are never touched
        - A refused promotion mutates nothing
        """

        def apply():
            applicant = self._load(applicant_id)
            from_stage = applicant.current_stage
            to_stage = self.catalog.next_stage(from_stage)

            if to_stage is None:
                if from_stage in self.catalog:
                    reason = f"Cannot promote further: {from_stage} is the final stage"
                else:
                    reason = f"Cannot promote from unknown stage: {from_stage}"
                logger.warning("Promotion of applicant %s refused: %s", applicant_id, reason)
                raise InvalidTransitionError(reason)

            if self._find_resident(applicant.unique_code, to_stage) is not None:
                raise ConflictError(f"Unique code already exists in {to_stage}")

            applicant.current_stage = to_stage
            applicant.round_within_stage = 0

            meta = {"from": from_stage, "to": to_stage}
            self._append_entry(applicant, AuditAction.PROMOTED, actor, meta)
            self.db.commit()
            self.db.refresh(applicant)
            return applicant, meta

        applicant, meta = self._with_retry(apply)
        logger.info("Applicant %s promoted %s -> %s by %r", applicant.id, meta["from"], meta["to"], actor.username)
        self._mirror(AuditAction.PROMOTED, applicant.id, actor, meta)
        return applicant

    def delete(self, applicant_id: int, actor: Actor) -> Dict[str, Any]:
        """
        Remove an applicant and its embedded trail.

        The system audit log receives the terminal DELETED entry before removal,
        and only once even when a concurrent write forces a retry.
        """
        mirrored = []

        def apply():
            applicant = self._load(applicant_id)
            if not mirrored:
                self._mirror(AuditAction.DELETED, applicant.id, actor, applicant.snapshot())
                mirrored.append(True)
            self.db.delete(applicant)
            self.db.commit()

        self._with_retry(apply)
        logger.info("Applicant %s deleted by %r", applicant_id, actor.username)
        return {"success": True, "id": applicant_id}

    def search(
        self,
        query: Optional[str] = None,
        stage: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Applicant]:
        """
        Case-insensitive substring search across the contact fields, newest first.
        An empty query matches everything. Read-only: no audit entry.
        """
        if limit is None:
            limit = self.search_limit
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        limit = min(limit, self.search_limit)

        with self._transaction():
            q = self.db.query(Applicant)
            if stage:
                q = q.filter(Applicant.current_stage == stage)
            if query:
                q = q.filter(or_(*(col.icontains(query, autoescape=True) for col in SEARCH_COLUMNS)))
            return q.order_by(Applicant.created_at.desc(), Applicant.id.desc()).limit(limit).all()

    def get_audit(self, applicant_id: int) -> List[AuditEntry]:
        """The applicant's trail, oldest first."""
        with self._transaction():
            applicant = self._load(applicant_id)
            return [AuditEntry.model_validate(entry) for entry in applicant.audit_log or []]

    def export(self, stage: Optional[str] = None, actor: Optional[Actor] = None) -> ExportReport:
        """Flatten applicants (optionally one stage) into the export report, newest first."""
        with self._transaction():
            q = self.db.query(Applicant)
            if stage:
                q = q.filter(Applicant.current_stage == stage)
            applicants = q.order_by(Applicant.created_at.desc(), Applicant.id.desc()).all()
            report = build_report(applicants, self.catalog, stage=stage)

        self._mirror(
            AuditAction.EXPORT,
            stage or "ALL",
            actor or Actor(),
            {"count": len(report.rows)},
        )
        return report

    def _load(self, applicant_id: int) -> Applicant:
        applicant = self.db.get(Applicant, applicant_id)
        if applicant is None:
            raise NotFoundError("Applicant not found", details={"id": applicant_id})
        return applicant

    def _find_resident(self, unique_code: str, stage: str) -> Optional[Applicant]:
        """The applicant currently holding ``unique_code`` in ``stage``, if any."""
        return self.db.query(Applicant).filter(
            Applicant.unique_code == unique_code,
            Applicant.current_stage == stage
        ).first()

    def _append_entry(self, applicant: Applicant, action: AuditAction, actor: Actor, meta: Dict[str, Any]) -> None:
        # Reassign rather than append in place so the JSON column is flagged dirty
        applicant.audit_log = list(applicant.audit_log or []) + [
            build_audit_entry(action, actor.username, meta)
        ]

    def _validate_scores(self, scores: Dict[str, int]) -> Dict[str, int]:
        unknown = sorted(set(scores) - set(self.catalog.score_categories))
        if unknown:
            raise ValidationError(
                f"Unknown score categories: {', '.join(unknown)}",
                details={"errors": [
                    {"field": f"scores.{name}", "message": "unknown score category"} for name in unknown
                ]}
            )
        return dict(scores)

    def _parse(self, model: Type[Payload], data: Union[Payload, Dict[str, Any]]) -> Payload:
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise ValidationError("Invalid applicant data", details={"errors": field_errors(e.errors())}) from e

    def _with_retry(self, operation: Callable[[], T]) -> T:
        """
        Run a read-modify-write. A concurrent writer bumps the row version, which
        surfaces as StaleDataError; the operation is then re-read and re-applied.
        """
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                with self._transaction():
                    return operation()
            except StaleDataError:
                logger.warning("Concurrent modification detected (attempt %d/%d)", attempt, self.MAX_ATTEMPTS)
        raise ConflictError("Applicant was modified concurrently, please retry")

    @contextmanager
    def _transaction(self):
        """
        One unit of work against the store. Any failure rolls the session back,
        and store faults are translated into the engine's error taxonomy.
        """
        try:
            self._apply_timeout()
            yield
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Uniqueness violation rejected at commit: %s", e.orig)
            raise ConflictError(DUPLICATE_CODE_MESSAGE) from e
        except (OperationalError, PoolTimeoutError) as e:
            self.db.rollback()
            logger.error("Record store unavailable: %s", e)
            raise StoreUnavailableError("Record store unavailable, retry later") from e
        except Exception:
            self.db.rollback()
            raise

    def _apply_timeout(self) -> None:
        if not self.timeout:
            return
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text(f"SET LOCAL statement_timeout = {int(self.timeout * 1000)}"))

    def _mirror(self, action: AuditAction, entity_id: Any, actor: Actor, meta: Dict[str, Any]) -> None:
        if self.system_audit is not None:
            self.system_audit.record(action, str(entity_id), actor, meta)
