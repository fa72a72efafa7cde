import logging
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Project root (one level above the parque_etl package)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = f"sqlite:///{_PROJECT_ROOT / 'parque_etl.db'}"

    # App
    APP_NAME: str = "Parque Informático ETL"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    VERSION_ETL: str = "1.0.0"

    # ETL pipeline
    ETL_MAX_WORKERS: int = 1  # 1 = procesamiento secuencial
    ETL_STRICT_MODE: bool = False
    ETL_AUTO_FIX: bool = True
    ETL_MAX_LOGS: int = 100
    ETL_TOP_ERRORES_DIAS: int = 7

    model_config = {"env_file": ".env", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Apply ``LOG_LEVEL`` (or an explicit level) to the root logger."""
    settings = get_settings()
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
