import json
import logging.config
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()

LOGGER_NAME = "ward_logger"
DEFAULT_LOGGER_CONFIG = Path(__file__).with_name("logger_config.json")

logger = logging.getLogger(LOGGER_NAME)


def build_database_url() -> str:
    """
    Resolve the database URL. DATABASE_URL wins when set, otherwise the URL is
    assembled from the POSTGRES_* variables.
    :return: SQLAlchemy connection URL.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    DB_USER = os.getenv("POSTGRES_USERNAME", "postgres")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_NAME = os.getenv("POSTGRES_NAME", "postgres")
    DB_HOST = os.getenv("POSTGRES_HOST", "db")
    DB_PORT = os.getenv("POSTGRES_PORT", "5432")
    return f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


class Settings(BaseModel):
    """Static deployment configuration, read once at startup."""

    model_config = ConfigDict(frozen=True)

    total_beds: int = Field(default=9, gt=0)
    storage_key: str = "EWMS_STATE_V1"
    outbox_key: str = "EWMS_OUTBOX_V1"
    sync_endpoint: str = ""
    sync_timeout_seconds: float = Field(default=10.0, gt=0)
    sync_max_attempts: int = Field(default=10, gt=0)
    database_url: str = "sqlite://"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            total_beds=int(os.getenv("TOTAL_BEDS", "9")),
            storage_key=os.getenv("STORAGE_KEY", "EWMS_STATE_V1"),
            outbox_key=os.getenv("OUTBOX_KEY", "EWMS_OUTBOX_V1"),
            sync_endpoint=os.getenv("SYNC_ENDPOINT", ""),
            sync_timeout_seconds=float(os.getenv("SYNC_TIMEOUT_SECONDS", "10")),
            sync_max_attempts=int(os.getenv("SYNC_MAX_ATTEMPTS", "10")),
            database_url=build_database_url(),
        )


def setup_logging(config_file: Path | None = None) -> None:
    """
    Configure logging from a JSON dictConfig file.
    :param config_file: Path to the config, defaults to LOGGER_CONFIG or the bundled file.
    """
    if config_file is None:
        config_file = Path(os.getenv("LOGGER_CONFIG", DEFAULT_LOGGER_CONFIG))
    with open(config_file) as f:
        config = json.load(f)
    logging.config.dictConfig(config)
