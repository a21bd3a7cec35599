"""
Auth router for registration, login, token refresh and logout.
"""

import logfire

from fastapi import APIRouter, status

from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, ConnectionFailure, ServerSelectionTimeoutError

from models.users import User

from schema.security import RefreshTokenRequest, RefreshTokenResponse
from schema.users import (
    AuthData,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserResponse,
)

from security.dependencies import CurrentUser
from security.helpers import find_user_by_email_or_username, get_user_by_email
from security.passwords import get_password_hash, verify_password
from security.sessions import (
    RotationFailure,
    SessionRotationError,
    end_session,
    rotate_session,
    start_session,
)

from utils.errors import (
    AuthenticationError,
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    ServiceUnavailableError,
)

MIN_PASSWORD_LENGTH = 6

router = APIRouter(
    prefix="/api/auth",
    tags=["Auth"],
)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest):
    """Create an account and open its first session.

    ## Possible Errors
    - 400 Bad Request: A field is missing or invalid, or the email or username is taken.
    - 503 Service Unavailable: The database cannot be reached.
    """
    missing = payload.missing_fields()
    if missing:
        logfire.info(f"Register request missing fields: {missing}")
        raise InvalidRequestError("Please provide all required fields")

    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise InvalidRequestError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    email = payload.email.strip().lower()
    username = payload.username.strip()

    with logfire.span(f"Registering new user: {email}"):
        try:
            if await find_user_by_email_or_username(email, username):
                logfire.warning(f"Attempt to register duplicate user: {email} / {username}")
                raise ConflictError("User with this email or username already exists")

            new_user = User(
                name=payload.name.strip(),
                email=email,
                username=username,
                password=get_password_hash(payload.password),
                is_admin=False,
            )
            await new_user.insert()
            logfire.info(f"Saved new user to database: {new_user.email}")

            tokens = await start_session(new_user)
        except ValidationError as e:
            logfire.info(f"Validation error registering {email}: {e.error_count()} error(s)")
            raise InvalidRequestError("Validation failed")
        except DuplicateKeyError:
            logfire.warning(f"Duplicate key while registering: {email}")
            raise ConflictError("User with this email or username already exists")
        except (ServerSelectionTimeoutError, ConnectionFailure) as e:
            logfire.error(f"Database unavailable while registering {email}: {e}")
            raise ServiceUnavailableError("Service temporarily unavailable")

    return AuthResponse(data=AuthData(user=UserResponse.from_user(new_user), tokens=tokens))


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest):
    """Exchange email and password for a token pair.

    Logging in replaces any refresh token issued before, which ends the
    previous session.

    ## Possible Errors
    - 400 Bad Request: Email or password missing.
    - 401 Unauthorized: Wrong password.
    - 404 Not Found: No account for this email.
    """
    if not payload.email or not payload.password:
        raise InvalidRequestError("Please provide email and password")

    email = payload.email.strip().lower()

    with logfire.span(f"Logging in user: {email}"):
        try:
            user = await get_user_by_email(email)
            if user is None:
                logfire.info(f"Login for unknown email: {email}")
                raise NotFoundError("User not found")

            if not verify_password(payload.password, user.password):
                logfire.info(f"Login with wrong password for user {user.id}")
                raise AuthenticationError("Invalid credentials")

            tokens = await start_session(user)
        except (ServerSelectionTimeoutError, ConnectionFailure) as e:
            logfire.error(f"Database unavailable during login for {email}: {e}")
            raise ServiceUnavailableError("Service temporarily unavailable")

    logfire.info(f"User {user.id} logged in successfully")
    return AuthResponse(data=AuthData(user=UserResponse.from_user(user), tokens=tokens))


@router.post("/refresh", response_model=RefreshTokenResponse)
async def refresh_access_token(payload: RefreshTokenRequest):
    """Exchange the current refresh token for a new pair.

    The presented token must be the one most recently issued to the
    account; after a successful call it is no longer accepted.

    ## Possible Errors
    - 400 Bad Request: No refresh token in the body.
    - 401 Unauthorized: Token invalid, expired, superseded or revoked.
    """
    if not payload.refresh_token:
        raise InvalidRequestError("Refresh token is required")

    try:
        tokens = await rotate_session(payload.refresh_token)
    except SessionRotationError as e:
        logfire.warning(f"Refresh refused ({e.reason.value}) for user {e.account_id or 'unknown'}")
        if e.reason is RotationFailure.INVALID_TOKEN:
            raise AuthenticationError("Invalid or expired refresh token")
        raise AuthenticationError("Invalid refresh token")
    except (ServerSelectionTimeoutError, ConnectionFailure) as e:
        logfire.error(f"Database unavailable during token refresh: {e}")
        raise ServiceUnavailableError("Service temporarily unavailable")

    return RefreshTokenResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: CurrentUser):
    """Revoke the caller's refresh token."""
    try:
        await end_session(current_user)
    except (ServerSelectionTimeoutError, ConnectionFailure) as e:
        logfire.error(f"Database unavailable during logout for user {current_user.id}: {e}")
        raise ServiceUnavailableError("Service temporarily unavailable")

    logfire.info(f"User {current_user.id} logged out")
    return MessageResponse(message="Logged out successfully")
