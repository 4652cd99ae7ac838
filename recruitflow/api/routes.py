"""API routes for the applicant pipeline."""
import time
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.orm import Session

from recruitflow.api.auth import get_actor
from recruitflow.api.schemas import ApplicantResponse, DeleteResponse, ErrorResponse, StageResponse
from recruitflow.config import settings
from recruitflow.database import SessionLocal, get_db
from recruitflow.models.actor import Actor
from recruitflow.models.catalog import DEFAULT_CATALOG
from recruitflow.models.payloads import ApplicantCreate, ApplicantUpdate, AuditEntry
from recruitflow.services.lifecycle import ApplicantLifecycle
from recruitflow.services.system_audit import SystemAuditWriter

router = APIRouter(prefix="/applicants", dependencies=[Depends(get_actor)])

ERRORS = {
    400: {"model": ErrorResponse, "description": "Validation error or invalid transition"},
    404: {"model": ErrorResponse, "description": "Applicant not found"},
    409: {"model": ErrorResponse, "description": "Unique code already exists in this stage"},
    503: {"model": ErrorResponse, "description": "Record store unavailable"},
}


def get_audit_session_factory():
    """Sessions for the system audit log, independent of the request session."""
    return SessionLocal


def get_lifecycle(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    audit_sessions=Depends(get_audit_session_factory),
) -> ApplicantLifecycle:
    # System audit writes run after the response has been sent
    system_audit = SystemAuditWriter(audit_sessions, dispatch=background_tasks.add_task)
    return ApplicantLifecycle(
        db,
        catalog=DEFAULT_CATALOG,
        system_audit=system_audit,
        timeout=settings.store_timeout_seconds,
        search_limit=settings.search_limit,
    )


@router.get("/lists", response_model=List[StageResponse])
def list_stages(lifecycle: ApplicantLifecycle = Depends(get_lifecycle)):
    """The fixed stage pipeline, in promotion order."""
    return lifecycle.list_stages()


@router.post("", response_model=ApplicantResponse, status_code=status.HTTP_201_CREATED, responses=ERRORS)
def create_applicant(
    data: ApplicantCreate,
    lifecycle: ApplicantLifecycle = Depends(get_lifecycle),
    actor: Actor = Depends(get_actor),
):
    """Create an applicant. Stage defaults to the first stage of the pipeline."""
    return lifecycle.create(data, actor)


@router.get("/search", response_model=List[ApplicantResponse])
def search_applicants(
    q: str = "",
    list_name: Optional[str] = Query(None, alias="listName"),
    lifecycle: ApplicantLifecycle = Depends(get_lifecycle),
):
    return lifecycle.search(q, stage=list_name)


@router.get("/export", responses={200: {"content": {"text/csv": {}}}})
def export_applicants(
    list_name: Optional[str] = Query(None, alias="listName"),
    lifecycle: ApplicantLifecycle = Depends(get_lifecycle),
    actor: Actor = Depends(get_actor),
):
    """Download applicants as CSV, newest first."""
    report = lifecycle.export(list_name, actor)
    filename = f"applicants_{list_name or 'all'}_{int(time.time() * 1000)}.csv"
    return Response(
        content=report.to_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/{applicant_id}", response_model=ApplicantResponse, responses=ERRORS)
def get_applicant(applicant_id: int, lifecycle: ApplicantLifecycle = Depends(get_lifecycle)):
    return lifecycle.get(applicant_id)


@router.put("/{applicant_id}/promote", response_model=ApplicantResponse, responses=ERRORS)
def promote_applicant(
    applicant_id: int,
    lifecycle: ApplicantLifecycle = Depends(get_lifecycle),
    actor: Actor = Depends(get_actor),
):
    """
    Move an applicant to the next stage.

    WILL REFUSE if the applicant is already in the final stage.
    """
    return lifecycle.promote(applicant_id, actor)


@router.put("/{applicant_id}", response_model=ApplicantResponse, responses=ERRORS)
def update_applicant(
    applicant_id: int,
    data: ApplicantUpdate,
    lifecycle: ApplicantLifecycle = Depends(get_lifecycle),
    actor: Actor = Depends(get_actor),
):
    """Partial update: only supplied fields change, scores merge per category."""
    return lifecycle.update(applicant_id, data, actor)


@router.delete("/{applicant_id}", response_model=DeleteResponse, responses=ERRORS)
def delete_applicant(
    applicant_id: int,
    lifecycle: ApplicantLifecycle = Depends(get_lifecycle),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.delete(applicant_id, actor)


@router.get("/{applicant_id}/audit", response_model=List[AuditEntry], responses=ERRORS)
def get_audit_trail(applicant_id: int, lifecycle: ApplicantLifecycle = Depends(get_lifecycle)):
    """The applicant's own trail, oldest first."""
    return lifecycle.get_audit(applicant_id)
