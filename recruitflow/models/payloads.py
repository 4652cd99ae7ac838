"""Input payloads and trail entries accepted and returned by the lifecycle engine."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, conint, field_validator

from recruitflow.models.enums import AuditAction, Gender

# Strict, so JSON booleans are not coerced into 0/1 marks
Score = conint(strict=True, ge=0, le=100)


class _ApplicantFields(BaseModel):
    """Descriptive fields shared by create and update payloads."""
    contact_number: Optional[str] = Field(None, min_length=5, alias="contactNumber")
    gender: Optional[Gender] = None
    college: Optional[str] = None
    branch: Optional[str] = None
    year: Optional[conint(ge=1, le=5)] = None
    email: Optional[str] = None
    notes: Optional[str] = None
    scores: Optional[Dict[str, Score]] = None

    class Config:
        populate_by_name = True
        str_strip_whitespace = True

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v is not None else v


class ApplicantCreate(_ApplicantFields):
    name: str = Field(..., min_length=2)
    unique_code: str = Field(..., min_length=2, alias="uniqueCode")
    # Defaults to the first stage of the catalog when omitted
    current_stage: Optional[str] = Field(None, alias="currentStage")


class ApplicantUpdate(_ApplicantFields):
    """Partial update: only fields present in the payload are applied."""
    name: Optional[str] = Field(None, min_length=2)
    unique_code: Optional[str] = Field(None, min_length=2, alias="uniqueCode")
    round_within_stage: Optional[conint(ge=0)] = Field(None, alias="roundWithinStage")

    @field_validator("name", "unique_code", "notes", "scores", "round_within_stage")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may not be null")
        return v


class AuditEntry(BaseModel):
    """One immutable entry of an applicant's trail."""
    action: AuditAction
    performed_by: str = Field(validation_alias="performedBy", serialization_alias="performedBy")
    timestamp: datetime
    meta: Dict[str, Any] = {}

    class Config:
        frozen = True
