import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load the appropriate .env file on module import
env = os.environ.get("RECORDBASE_ENV", "development").lower()
env_file = f".env.{env}"
if os.path.exists(env_file):
    load_dotenv(env_file)
else:
    # Fall back to the default .env file
    load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    environment: str
    database_url: Optional[str]
    log_level: str
    log_format: str
    cache_schema: bool

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            environment=env,
            database_url=os.environ.get("DATABASE_URL"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "console"),
            cache_schema=_env_flag("RECORDBASE_CACHE_SCHEMA", True),
        )


config = Config.from_env()
