from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    RECALL_API_KEY: str = Field(default="")
    RECALL_API_URL: str = Field(
        default="https://us-east-1.recall.ai/api/v1/meeting_direct_connect"
    )
    RECALL_TIMEOUT_SECONDS: float = Field(default=30.0)
    ZOOM_CLIENT_ID: str = Field(default="")
    ZOOM_CLIENT_SECRET: str = Field(default="")
    ZOOM_SECRET_TOKEN: str = Field(default="")  # webhook url validation
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3456)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    PUBLIC_DIR: str = Field(default="public")


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        bad = sorted(
            {str(error["loc"][0]) for error in exc.errors() if error.get("loc")}
        )
        raise RuntimeError(
            f"Invalid environment variables: {', '.join(bad)}"
        ) from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
