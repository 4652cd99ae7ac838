"""Enums for the applicant pipeline - these define the valid values for actions and attributes."""
from enum import Enum


class AuditAction(str, Enum):
    """Actions recorded in the per-applicant trail and the system audit log."""
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    PROMOTED = "PROMOTED"
    DELETED = "DELETED"
    # System audit log only - exports never touch an applicant's own trail
    EXPORT = "EXPORT"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"
