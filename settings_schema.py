from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError


class AppSettings(BaseModel):
    backend: Literal["sqlite", "firestore"] = "sqlite"
    db_path: str = "training.db"
    api_base_url: str = "http://localhost:8000"
    firestore_project: Optional[str] = None
    firestore_credentials: Optional[str] = None
    bootstrap_timeout: float = Field(default=5.0, gt=0)
    feed_limit: int = Field(default=20, ge=1, le=100)
    legacy_new_namespace: bool = False
    log_level: str = "INFO"


def validate_settings(data: dict) -> AppSettings:
    try:
        return AppSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
