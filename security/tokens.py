"""Issue and verify access and refresh tokens.

Access and refresh tokens are HS256 JWTs signed with two independent
secrets, so a leaked access key cannot be used to mint refresh tokens and
vice versa. Verification never raises for a bad token: callers branch on
``None``.
"""
import os
import secrets

from datetime import datetime, timedelta, timezone

import logfire

from jose import JWTError, jwt
from pydantic import ValidationError

from schema.security import TokenData, TokenPair

ALGORITHM = "HS256"

ACCESS_SECRET_ENV = "ACCESS_TOKEN_SECRET_KEY"
REFRESH_SECRET_ENV = "REFRESH_TOKEN_SECRET_KEY"

DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 7 * 24 * 60
DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS = 30


def _get_secret(env_name: str) -> str:
    secret = os.getenv(env_name)
    if not secret:
        raise RuntimeError(f"{env_name} is not set")
    return secret


def access_token_ttl() -> timedelta:
    """Lifetime of an access token, from `ACCESS_TOKEN_EXPIRE_MINUTES`."""
    minutes = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES)))
    return timedelta(minutes=minutes)


def refresh_token_ttl() -> timedelta:
    """Lifetime of a refresh token, from `REFRESH_TOKEN_EXPIRE_DAYS`."""
    days = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", str(DEFAULT_REFRESH_TOKEN_EXPIRE_DAYS)))
    return timedelta(days=days)


def secrets_are_distinct() -> bool:
    return _get_secret(ACCESS_SECRET_ENV) != _get_secret(REFRESH_SECRET_ENV)


def _encode(account_id: str, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "id": account_id,
        "iat": now,
        "exp": now + expires_delta,
        "jti": secrets.token_urlsafe(16),  #* keeps tokens minted in the same second distinct
    }
    return jwt.encode(to_encode, secret, algorithm=ALGORITHM)


def _decode(token: str, secret: str) -> TokenData | None:
    if not token:
        return None
    try:
        payload: dict = jwt.decode(token, secret, algorithms=[ALGORITHM])
        if not payload.get("id"):
            return None
        return TokenData(id=str(payload["id"]), jti=payload.get("jti"), exp=payload.get("exp"))
    except (JWTError, ValidationError) as e:
        logfire.debug(f"Token verification failed: {type(e).__name__}")
        return None


def create_access_token(account_id: str, expires_delta: timedelta | None = None) -> str:
    """Creates a new access token.

    Args:
        account_id (str): ID of the account the token is issued for.
        expires_delta (timedelta | None, optional): Lifetime of the token.
            Defaults to `ACCESS_TOKEN_EXPIRE_MINUTES`.

    Returns:
        str: The signed token.
    """
    return _encode(account_id, _get_secret(ACCESS_SECRET_ENV), expires_delta or access_token_ttl())


def create_refresh_token(account_id: str, expires_delta: timedelta | None = None) -> str:
    """Creates a new refresh token signed with the refresh secret.

    Args:
        account_id (str): ID of the account the token is issued for.
        expires_delta (timedelta | None, optional): Lifetime of the token.
            Defaults to `REFRESH_TOKEN_EXPIRE_DAYS`.

    Returns:
        str: The signed token.
    """
    return _encode(account_id, _get_secret(REFRESH_SECRET_ENV), expires_delta or refresh_token_ttl())


def create_token_pair(account_id: str) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(account_id),
        refresh_token=create_refresh_token(account_id),
    )


def verify_access_token(token: str) -> TokenData | None:
    """Verify signature and expiry of an access token.

    Returns:
        TokenData | None: Token data if valid, None otherwise.
    """
    return _decode(token, _get_secret(ACCESS_SECRET_ENV))


def verify_refresh_token(token: str) -> TokenData | None:
    """Verify signature and expiry of a refresh token.

    Returns:
        TokenData | None: Token data if valid, None otherwise.
    """
    return _decode(token, _get_secret(REFRESH_SECRET_ENV))
