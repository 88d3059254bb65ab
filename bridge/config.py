import logging
import os
from dataclasses import dataclass


@dataclass
class Settings:
    store_url: str = "http://recordstore:8000"
    database: str = "private"
    max_workers: int = 4
    log_level: str = "INFO"


def load_settings() -> Settings:
    # e.g. RECORD_STORE_URL="http://recordstore:8000"
    return Settings(
        store_url=os.getenv("RECORD_STORE_URL", Settings.store_url),
        database=os.getenv("RECORD_STORE_DATABASE", Settings.database),
        max_workers=int(os.getenv("RECORD_STORE_WORKERS", str(Settings.max_workers))),
        log_level=os.getenv("LOG_LEVEL", Settings.log_level),
    )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
