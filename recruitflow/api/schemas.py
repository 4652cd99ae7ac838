"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ApplicantResponse(BaseModel):
    id: int
    name: str
    unique_code: str = Field(serialization_alias="uniqueCode")
    contact_number: Optional[str] = Field(serialization_alias="contactNumber")
    gender: Optional[str]
    college: Optional[str]
    branch: Optional[str]
    year: Optional[int]
    email: Optional[str]
    current_stage: str = Field(serialization_alias="currentStage")
    round_within_stage: int = Field(serialization_alias="roundWithinStage")
    scores: Dict[str, int]
    notes: str
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    class Config:
        from_attributes = True


class StageResponse(BaseModel):
    name: str
    rounds: List[str]
    score_categories: List[str] = Field(serialization_alias="scoreCategories")


class DeleteResponse(BaseModel):
    success: bool = True
    id: int


# Error response
class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorBody
