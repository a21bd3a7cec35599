"""FastAPI dependencies that gate requests on the bearer access token.

`get_current_user` rejects with 401 on any failure. `get_optional_user`
runs the same steps but lets the request through anonymously instead.
"""
from enum import Enum
from typing import Annotated

import logfire

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from models.users import User
from utils.errors import AuthenticationError, AuthorizationError

from .helpers import get_user_by_id
from .tokens import verify_access_token

# Values a buggy client sends when it stringifies a missing token
PLACEHOLDER_TOKENS = frozenset({"null", "undefined"})

# Only used to document the scheme in OpenAPI; the header is parsed below
bearer_scheme = HTTPBearer(auto_error=False, description="Access token issued by /api/auth/login")


class AuthState(str, Enum):
    """Outcome of resolving the caller from the Authorization header."""
    MISSING_HEADER = "missing_header"
    BAD_FORMAT = "bad_format"
    VERIFY_FAILED = "verify_failed"
    ACCOUNT_MISSING = "account_missing"
    LOOKUP_FAILED = "lookup_failed"
    AUTHENTICATED = "authenticated"


FAILURE_MESSAGES = {
    AuthState.MISSING_HEADER: "Not authorized, no token",
    AuthState.BAD_FORMAT: "Invalid token format",
    AuthState.VERIFY_FAILED: "Invalid or expired token",
    AuthState.ACCOUNT_MISSING: "User not found",
    AuthState.LOOKUP_FAILED: "Not authorized, authentication failed",
}


def parse_bearer_header(authorization: str | None) -> tuple[AuthState, str | None]:
    """Extract the token from an `Authorization: Bearer <token>` header.

    Returns:
        tuple[AuthState, str | None]: `AUTHENTICATED` with the token when a
        usable value is present, otherwise the failure state and None.
    """
    if not authorization:
        return AuthState.MISSING_HEADER, None

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return AuthState.MISSING_HEADER, None

    token = token.strip()
    if not token or token in PLACEHOLDER_TOKENS:
        return AuthState.BAD_FORMAT, None
    return AuthState.AUTHENTICATED, token


async def resolve_identity(authorization: str | None) -> tuple[AuthState, User | None, str | None]:
    """Run extraction, verification and account lookup.

    Database errors during the lookup propagate to the caller.
    """
    state, token = parse_bearer_header(authorization)
    if token is None:
        return state, None, None

    claims = verify_access_token(token)
    if claims is None:
        return AuthState.VERIFY_FAILED, None, None

    user = await get_user_by_id(claims.id)
    if user is None:
        return AuthState.ACCOUNT_MISSING, None, None

    return AuthState.AUTHENTICATED, user, token


def _attach(request: Request, user: User | None, token: str | None) -> None:
    request.state.user = user
    request.state.token = token


async def get_current_user(
    request: Request,
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User:
    """Resolve the caller or reject the request with 401.

    Raises:
        AuthenticationError: When the header is missing or malformed, the
            token does not verify, or the account no longer exists.

    Returns:
        User: The authenticated user, also attached to `request.state.user`.
    """
    try:
        state, user, token = await resolve_identity(request.headers.get("Authorization"))
    except Exception as e:
        logfire.error(f"Error in auth dependency on {request.url.path}: {e}")
        state, user, token = AuthState.LOOKUP_FAILED, None, None

    if state is not AuthState.AUTHENTICATED:
        logfire.info(f"Rejected request to {request.url.path}: {state.value}")
        raise AuthenticationError(FAILURE_MESSAGES[state])

    _attach(request, user, token)
    return user


async def get_optional_user(
    request: Request,
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> User | None:
    """Resolve the caller when possible; never rejects the request."""
    try:
        state, user, token = await resolve_identity(request.headers.get("Authorization"))
    except Exception as e:
        logfire.error(f"Error in optional auth on {request.url.path}: {e}")
        state, user, token = AuthState.LOOKUP_FAILED, None, None

    if state is AuthState.AUTHENTICATED:
        logfire.debug(f"Optional auth successful for user: {user.id}")
    elif state is not AuthState.MISSING_HEADER:
        logfire.info(f"Skipping optional auth on {request.url.path}: {state.value}")

    _attach(request, user, token)
    return user


async def require_admin(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    """Allow only administrators through.

    Raises:
        AuthorizationError: When the caller is not an admin.
    """
    if not current_user.is_admin:
        raise AuthorizationError("Not authorized as an admin")
    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[User | None, Depends(get_optional_user)]
AdminUser = Annotated[User, Depends(require_admin)]
