"""Server side refresh token record.

Each account keeps exactly one trusted refresh token. Issuing a new pair
overwrites it, so the previous refresh token stops working immediately,
and logout clears it.
"""
import hmac

from datetime import datetime
from enum import Enum

import logfire
import pytz

from beanie.operators import Set

from models.users import User
from schema.security import TokenPair

from .helpers import get_user_by_id
from .tokens import create_token_pair, verify_refresh_token


class RotationFailure(str, Enum):
    """Why a refresh request was refused."""
    INVALID_TOKEN = "invalid_token"
    ACCOUNT_MISSING = "account_missing"
    STORED_TOKEN_MISMATCH = "stored_token_mismatch"


class SessionRotationError(Exception):
    def __init__(self, reason: RotationFailure, account_id: str | None = None):
        super().__init__(reason.value)
        self.reason = reason
        self.account_id = account_id


async def start_session(user: User) -> TokenPair:
    """Issue a fresh token pair for `user` and store its refresh token.

    Called on registration and login.
    """
    tokens = create_token_pair(str(user.id))
    user.refresh_token = tokens.refresh_token
    await user.save()
    return tokens


async def rotate_session(presented_token: str) -> TokenPair:
    """Exchange `presented_token` for a new pair.

    The token must verify against the refresh secret and match the value
    stored on the account. The overwrite is a conditional update on the
    stored value, so when two rotations race on the same account only one
    of them wins and the other fails with `STORED_TOKEN_MISMATCH`.

    Raises:
        SessionRotationError: When the token cannot be rotated.
    """
    claims = verify_refresh_token(presented_token)
    if claims is None:
        raise SessionRotationError(RotationFailure.INVALID_TOKEN)

    user = await get_user_by_id(claims.id)
    if user is None:
        raise SessionRotationError(RotationFailure.ACCOUNT_MISSING, claims.id)

    if not user.refresh_token or not hmac.compare_digest(user.refresh_token, presented_token):
        raise SessionRotationError(RotationFailure.STORED_TOKEN_MISMATCH, claims.id)

    tokens = create_token_pair(str(user.id))
    result = await User.find_one(
        User.id == user.id, User.refresh_token == presented_token
    ).update(Set({User.refresh_token: tokens.refresh_token, User.updated_at: datetime.now(pytz.utc)}))

    if result.modified_count != 1:
        # Another rotation overwrote the stored token between our read and write
        raise SessionRotationError(RotationFailure.STORED_TOKEN_MISMATCH, claims.id)

    logfire.info(f"Rotated refresh token for user {claims.id}")
    return tokens


async def end_session(user: User) -> None:
    """Forget the stored refresh token so it can no longer be exchanged."""
    user.refresh_token = ""
    await user.save()
