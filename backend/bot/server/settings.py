"""Bot configuration via environment variables."""

from enum import StrEnum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from bot.services.cards import ARKHAMDB_CARDS_URL


class RunMode(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class BotSettings(BaseSettings):
    model_config = {"env_prefix": "BOT_"}

    command_prefix: str = Field(default="!", min_length=1)
    admin_role: str | None = None
    data_dir: str = Field(default="backend/data", min_length=1)
    log_dir: str = Field(default="backend/logs/bot", min_length=1)
    mode: RunMode = RunMode.DEVELOPMENT
    # In development, only this guild is served and global commands are deployed to it
    test_server_id: str | None = None
    timer_tick_seconds: float = Field(default=60.0, gt=0)
    cards_url: str = Field(default=ARKHAMDB_CARDS_URL, min_length=1)

    # Read from DISCORD_TOKEN (not BOT_DISCORD_TOKEN), the name every deployment already uses.
    discord_token: str = Field(validation_alias="DISCORD_TOKEN", min_length=1)

    @field_validator("admin_role", "test_server_id", mode="before")
    @classmethod
    def blank_is_unset(cls, value: str | None) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_development(self) -> bool:
        return self.mode is RunMode.DEVELOPMENT
