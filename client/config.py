"""Client settings."""
import os

from typing import Annotated, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

DEFAULT_API_URL = "http://localhost:5000/api"


class ClientSettings(BaseModel):
    """Timeouts and refresh cadence for `MercuryClient`. Durations are in seconds."""

    base_url: Annotated[str, Field(default=DEFAULT_API_URL)]
    request_timeout: Annotated[float, Field(default=10.0, gt=0)]
    refresh_timeout: Annotated[float, Field(default=5.0, gt=0)]
    refresh_interval: Annotated[float, Field(default=55 * 60.0, gt=0)]  # proactive renewal age
    check_interval: Annotated[float, Field(default=5 * 60.0, gt=0)]  # scheduler tick
    soft_path_markers: Annotated[Tuple[str, ...], Field(default=("/bookmark",))]
    # Credential endpoints answer 401 for bad input, never for a stale token
    unretried_paths: Annotated[
        Tuple[str, ...], Field(default=("/auth/login", "/auth/register", "/auth/refresh"))
    ]

    @model_validator(mode="after")
    def check_check_interval(self):
        if self.check_interval > self.refresh_interval:
            raise ValueError("check_interval must not exceed refresh_interval")
        return self

    @classmethod
    def from_env(cls, **overrides) -> "ClientSettings":
        """Build settings from `MERCURY_*` environment variables."""
        load_dotenv()
        values = {}
        env_map = {
            "base_url": "MERCURY_API_URL",
            "request_timeout": "MERCURY_REQUEST_TIMEOUT",
            "refresh_timeout": "MERCURY_REFRESH_TIMEOUT",
            "refresh_interval": "MERCURY_REFRESH_INTERVAL",
            "check_interval": "MERCURY_REFRESH_CHECK_INTERVAL",
        }
        for field, env_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                values[field] = value
        values.update(overrides)
        return cls(**values)
