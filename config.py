import os
from dataclasses import dataclass

from dotenv import load_dotenv

from strava_api import MAX_PER_PAGE

REQUIRED_VARS = ("STRAVA_CLIENT_ID", "STRAVA_CLIENT_SECRET", "REDIRECT_URI")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and passed around."""

    client_id: str
    client_secret: str
    redirect_uri: str
    database_url: str = "sqlite:///strava.db"
    scope: str = "activity:read_all"
    per_page: int = 100
    http_timeout: float = 30.0
    retry_delay: float = 15.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        load_dotenv(env_file)

        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")

        per_page = int(os.getenv("STRAVA_PER_PAGE", "100"))
        if not 1 <= per_page <= MAX_PER_PAGE:
            raise ValueError(f"STRAVA_PER_PAGE must be between 1 and {MAX_PER_PAGE}, got {per_page}")

        return cls(
            client_id=os.getenv("STRAVA_CLIENT_ID"),
            client_secret=os.getenv("STRAVA_CLIENT_SECRET"),
            redirect_uri=os.getenv("REDIRECT_URI"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///strava.db"),
            scope=os.getenv("STRAVA_SCOPE", "activity:read_all"),
            per_page=per_page,
            http_timeout=float(os.getenv("STRAVA_HTTP_TIMEOUT", "30")),
            retry_delay=float(os.getenv("STRAVA_RETRY_DELAY", "15")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
