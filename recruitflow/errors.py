"""Typed errors raised by the lifecycle engine, and their API representation."""
from typing import Any, Dict, Iterable, List, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


# Where FastAPI found the bad value; not part of the field name
REQUEST_LOCATIONS = ("body", "query", "path", "header")


def field_errors(errors: Iterable[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into field/message pairs."""
    flattened = []
    for err in errors:
        loc = list(err["loc"])
        if len(loc) > 1 and loc[0] in REQUEST_LOCATIONS:
            loc = loc[1:]
        flattened.append({"field": ".".join(str(part) for part in loc), "message": err["msg"]})
    return flattened


class LifecycleError(Exception):
    """
    Raised when the engine refuses an operation.
    Always reported to the caller; never fatal to the process.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    @property
    def payload(self) -> Dict[str, Any]:
        return build_error_payload(self.code, self.message, self.details)


class ValidationError(LifecycleError):
    """Malformed or out-of-range input. The caller can fix the input and retry."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class ConflictError(LifecycleError):
    """(uniqueCode, currentStage) is already taken, or a concurrent write won."""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class NotFoundError(LifecycleError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class InvalidTransitionError(LifecycleError):
    """Promotion attempted from the final stage or from a stage the catalog does not know."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TRANSITION"


class StoreUnavailableError(LifecycleError):
    """Timeout or connectivity fault talking to the store. Transient; retry with backoff."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"


async def lifecycle_error_handler(_: Request, exc: LifecycleError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload)


async def request_validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Requests rejected before reaching the engine are reported as a ValidationError too."""
    error = ValidationError("Invalid applicant data", details={"errors": field_errors(exc.errors())})
    return JSONResponse(status_code=error.status_code, content=error.payload)
