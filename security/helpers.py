"""Account lookups used by the auth dependencies and routers.
"""
from beanie import PydanticObjectId
from beanie.operators import Or
from bson.errors import InvalidId

from models.users import User


def parse_object_id(value: str) -> PydanticObjectId | None:
    """Parse `value` into an ObjectId, returning None when it is not one."""
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        return None


async def get_user_by_email(email: str) -> User | None:
    """
    Fetches a user from the database by their email.

    Args:
        email (str): The email of the user to fetch.

    Returns:
        User | None: The user object if found, None otherwise.
    """
    return await User.find_one(User.email == email)


async def get_user_by_id(user_id: str) -> User | None:
    """
    Fetches a user from the database by their ID.

    An ID that is not a valid ObjectId is treated as unknown; database
    errors propagate to the caller.

    Args:
        user_id (str): The ID of the user to fetch.

    Returns:
        User | None: The user object if found, None otherwise.
    """
    object_id = parse_object_id(user_id)
    if object_id is None:
        return None
    return await User.get(object_id)


async def find_user_by_email_or_username(email: str, username: str) -> User | None:
    return await User.find_one(Or(User.email == email, User.username == username))
