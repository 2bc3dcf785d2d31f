import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class ConfigError(RuntimeError):
    """Raised when the process cannot start with the current environment."""


@dataclass(frozen=True)
class Settings:
    database_url: str
    database_name: str
    line_channel_id: int
    line_channel_secret: str
    line_callback_url: str
    session_secret: str
    port: int = 8000


def load_settings() -> Settings:
    channel_id = os.getenv("LINE_CHANNEL_ID")
    channel_secret = os.getenv("LINE_CHANNEL_SECRET")
    if not channel_id or not channel_secret:
        raise ConfigError("LINE_CHANNEL_ID and LINE_CHANNEL_SECRET must be set")
    try:
        numeric_id = int(channel_id)
    except ValueError:
        raise ConfigError(
            "LINE_CHANNEL_ID must be a numeric value. Check the LINE Developers Console "
            "for the Channel ID (not the Channel Secret or Bot User ID)."
        )

    return Settings(
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "bakery"),
        line_channel_id=numeric_id,
        line_channel_secret=channel_secret,
        line_callback_url=os.getenv("LINE_CALLBACK_URL", "http://localhost:8000/api/auth/line/callback"),
        session_secret=os.getenv("SESSION_SECRET", "secret-key-change-me"),
        port=int(os.getenv("PORT", 8000)),
    )
