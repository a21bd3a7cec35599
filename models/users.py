from datetime import datetime

import pytz

from pydantic import Field, EmailStr, field_serializer
from typing import Annotated

from beanie import Document, Indexed, PydanticObjectId, before_event, Replace, Save


class User(Document):
    """Account record. Holds the credential subset used by authentication
    alongside the public profile fields.
    """
    name: Annotated[str, Field(min_length=1, max_length=100)]
    email: Annotated[EmailStr, Indexed(unique=True), Field(max_length=254)]
    username: Annotated[str, Indexed(unique=True), Field(min_length=1, max_length=50)]
    password: Annotated[str, Field()]  # bcrypt hash, never the plaintext
    refresh_token: Annotated[str, Field(default="")]  # "" means no active session
    avatar: Annotated[str, Field(default="")]
    bio: Annotated[str, Field(default="")]
    is_admin: Annotated[bool, Field(default=False)]
    created_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(pytz.utc))]
    updated_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(pytz.utc))]

    @field_serializer("id")
    def convert_pydantic_object_id_to_string(self, id: PydanticObjectId):
        return str(id)

    @before_event(Replace, Save)
    def touch_updated_at(self):
        self.updated_at = datetime.now(pytz.utc)

    class Settings:
        name = "users"
