"""Nested configuration models."""

from pydantic import BaseModel, Field


class ConnectionSettings(BaseModel):
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = ""


class EmbedSettings(BaseModel):
    color: str = "GREEN"
    username: str = "SQL Backup"


class TimingSettings(BaseModel):
    # All values in seconds
    pre_cleanup_settle: float = Field(default=1.0, ge=0)
    upload_settle: float = Field(default=5.0, ge=0)
    post_send_delay: float = Field(default=2.0, ge=0)
    retry_backoff: float = Field(default=15.0, ge=0)
    delete_attempts: int = Field(default=3, ge=1)
    delete_retry_delay: float = Field(default=1.0, ge=0)
    send_timeout: float = Field(default=120.0, gt=0)
    dump_timeout: float = Field(default=600.0, gt=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
