# config/settings.py
import os
import sys
from dotenv import load_dotenv
from pydantic import ValidationError, Field
from pydantic_settings import BaseSettings
from model.lifetime import LifetimeType
from util.enums import Environment, StoreBackend
import logging


if os.getenv("APP_ENV", Environment.DEV) == Environment.DEV:
    load_dotenv()

_log = logging.getLogger("config.settings")


class Settings(BaseSettings):
    # App
    APP_ENV: str = Field(default=Environment.DEV.value, validation_alias="APP_ENV")
    IS_CLIENT: bool = Field(default=True, validation_alias="IS_CLIENT")

    # Durable store
    STORE_BACKEND: StoreBackend = Field(
        default=StoreBackend.MEMORY, validation_alias="STORE_BACKEND"
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", validation_alias="REDIS_URL"
    )
    STORE_KEY_PREFIX: str = Field(
        default="__amplify__", validation_alias="STORE_KEY_PREFIX"
    )

    # Session defaults
    DEFAULT_LIFETIME: LifetimeType = Field(
        default=LifetimeType.TEMPORARY, validation_alias="DEFAULT_LIFETIME"
    )

    # Logging knobs
    LOGGER_NAME: str = "persistent-session"
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    LOG_TO_FILE: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    LOG_DIR: str = Field(default="logs", validation_alias="LOG_DIR")
    LOG_FILE_NAME: str = Field(default="app.log", validation_alias="LOG_FILE_NAME")
    LOG_MAX_BYTES: int = Field(
        default=50 * 1024 * 1024, validation_alias="LOG_MAX_BYTES"
    )
    LOG_BACKUP_COUNT: int = Field(default=5, validation_alias="LOG_BACKUP_COUNT")


try:
    settings = Settings()
except ValidationError as e:
    print("❌ Missing/invalid environment variables:", file=sys.stderr)
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", []))
        msg = err.get("msg", "")
        print(f" - {loc}: {msg}", file=sys.stderr)
    sys.exit(1)
except Exception as e:
    print(f"❌ Settings initialization failed: {e}", file=sys.stderr)
    sys.exit(1)

_log.debug(
    "settings.loaded env=%s backend=%s", settings.APP_ENV, settings.STORE_BACKEND.value
)
