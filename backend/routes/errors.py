from fastapi import HTTPException, status

from backend.core.exceptions import (
    InvalidTransition,
    NotFound,
    OverlapConflict,
    SchedulingError,
    SlotConflict,
    ValidationError,
)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

STATUS_BY_ERROR = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    OverlapConflict: status.HTTP_409_CONFLICT,
    SlotConflict: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: SchedulingError) -> HTTPException:
    status_code = STATUS_BY_ERROR.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=exc.detail)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
