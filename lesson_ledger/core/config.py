# lesson_ledger/core/config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Values come from the process environment; unknown variables are ignored
    # so the service can share an .env file with its neighbours.
    model_config = SettingsConfigDict(extra="ignore")

    # The environment mode: 'local' or 'prod'
    ENV: str = "local"

    # --- Database URLs ---
    DATABASE_URL_PROD: str = "sqlite:///./lesson_ledger.db"
    DATABASE_URL_LOCAL: str = "sqlite:///./lesson_ledger.db"

    # --- Reminder scheduling ---
    # All course times are interpreted in this single IANA zone.
    LOCAL_TIMEZONE: str = "UTC"
    REMINDER_TICK_MINUTES: int = 60
    REMINDER_LOOKAHEAD_DAYS: int = 7
    REMINDER_WINDOW_HOURS: int = 24
    REMINDER_BACKSTOP_HOUR: int = 20
    REMINDER_BACKSTOP_MINUTE: int = 0

    # --- Push delivery ---
    PUSH_GATEWAY_URL: str = ""
    PUSH_GATEWAY_TIMEOUT_SECONDS: float = 5.0
    INTERNAL_API_KEY: str = ""
    NOTIFICATION_ICON: str = "/icon-192x192.png"

    # --- Dynamic Properties ---
    @property
    def DATABASE_URL(self) -> str:
        return (
            self.DATABASE_URL_LOCAL if self.ENV == "local" else self.DATABASE_URL_PROD
        )


# Create a single instance of the settings
settings = Settings()
