"""Error taxonomy shared by the routers and the auth dependencies.

Each class is an ``HTTPException`` so FastAPI renders it directly; the
handler registered in ``main.py`` turns it into the
``{"success": false, "message": ...}`` envelope used by the API.
"""

from fastapi import HTTPException, status


class APIError(HTTPException):
    """Base class for errors with a fixed status code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, headers: dict | None = None):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)

    @property
    def message(self) -> str:
        return self.detail


class InvalidRequestError(APIError):
    """Missing or malformed input."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(APIError):
    """Duplicate email or username. Reported as a 400 like other input errors."""

    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(APIError):
    """Bad credentials or token."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationError(APIError):
    """Valid identity, insufficient privilege."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND


class ServiceUnavailableError(APIError):
    """The database could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
