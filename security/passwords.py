"""Password hashing helpers."""
import os

from functools import lru_cache

from passlib.context import CryptContext

DEFAULT_HASH_ROUNDS = 10


@lru_cache(maxsize=None)
def _get_context(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


def get_pwd_context() -> CryptContext:
    """Return the bcrypt context for the configured cost factor."""
    rounds = int(os.getenv("PASSWORD_HASH_ROUNDS", str(DEFAULT_HASH_ROUNDS)))
    return _get_context(rounds)


def get_password_hash(password: str) -> str:
    """Generates a salted bcrypt hash for the given password.

    Args:
        password (str): The plain text password to hash.

    Returns:
        str: The hashed password.
    """
    return get_pwd_context().hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies `plain_password` against `hashed_password`.

    A malformed or empty hash counts as a mismatch.

    Args:
        plain_password (str): The plain text password to verify.
        hashed_password (str): The hashed password to compare against.

    Returns:
        bool: True if the passwords match, False otherwise.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return get_pwd_context().verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False
