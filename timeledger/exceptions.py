from fastapi import HTTPException, status


class TimeTrackingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Time tracking error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class SessionAlreadyActive(TimeTrackingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A time tracking session is already active"


class NoActiveSession(TimeTrackingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Active session not found"


class InvalidInterval(TimeTrackingError):
    default_detail = "End time must be after start time"


class InvalidOffset(TimeTrackingError):
    default_detail = "Invalid timezone offset"


class InvalidHourlyRate(TimeTrackingError):
    default_detail = "An hourly rate greater than zero is required. Set one here or as the default in settings."


class EntryNotFound(TimeTrackingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Time entry not found"


class NotOwner(TimeTrackingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not authorized to modify this time entry"


class TokenExpired(TimeTrackingError):
    status_code = status.HTTP_410_GONE
    default_detail = "This share link has expired. Ask the owner to generate a new one."


class TokenInvalid(TimeTrackingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "This share link is invalid"


def to_http_exception(error: TimeTrackingError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)


def get_user_exception():
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    return credentials_exception


def get_store_unavailable_exception(error: Exception):
    store_exception = HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Database error, please retry - {error}",
        headers={"Retry-After": "5"},
    )
    return store_exception
