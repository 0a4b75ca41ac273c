"""
Application settings (Pydantic Settings).
"""
import re
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

# .env next to backend/ (parent of slotbook/)
_env_path = Path(__file__).resolve().parent.parent / ".env"

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Settings(BaseSettings):
    database_url: str = "sqlite:///./slotbook.db"
    # Business calendar: booking codes and "today" for housekeeping use this timezone
    business_timezone: str = "Asia/Manila"
    booking_code_prefix: str = "GN"

    # Fixed slot grid shared by every provider (inclusive end)
    slot_grid_start: str = "08:00"
    slot_grid_end: str = "20:30"
    slot_grid_step_minutes: int = 30

    # Housekeeping
    pending_expiry_hours: int = 48
    pending_expiry_interval_minutes: int = 15
    slot_cleanup_interval_minutes: int = 60
    scheduler_enabled: bool = True

    # Email: SMTP_USER / SMTP_PASSWORD in .env (Gmail app password works)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    notify_from: str = ""
    admin_notify_email: str = ""

    # Spreadsheet mirror (Apps Script web app or similar); empty disables it
    backup_webhook_url: str = ""
    backup_timeout_seconds: float = 10.0

    cors_origins: str = ""

    class Config:
        env_file = _env_path
        extra = "ignore"

    @field_validator("smtp_user", "smtp_password", "backup_webhook_url", "booking_code_prefix", mode="after")
    @classmethod
    def strip_value(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("slot_grid_start", "slot_grid_end", mode="after")
    @classmethod
    def check_grid_time(cls, v: str) -> str:
        v = (v or "").strip()
        if not _HHMM.match(v):
            raise ValueError(f"Grid time must be HH:MM, got {v!r}")
        return v

    @model_validator(mode="after")
    def check_grid(self) -> "Settings":
        if self.slot_grid_step_minutes <= 0:
            raise ValueError("SLOT_GRID_STEP_MINUTES must be > 0")
        if self.slot_grid_start > self.slot_grid_end:
            raise ValueError("SLOT_GRID_START must not be after SLOT_GRID_END")
        if self.pending_expiry_hours < 1:
            raise ValueError("PENDING_EXPIRY_HOURS must be >= 1")
        return self


settings = Settings()
