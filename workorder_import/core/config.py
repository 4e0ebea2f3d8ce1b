import os
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env")

    APP_NAME: str = "Work Order Import"
    MAX_UPLOAD_SIZE_MB: int = 100
    DROP_DIR: str = "drop"
    DEBUG: bool = True
    DB_PATH: str = "data/workorder_import.db"
    LOG_LEVEL: str = "INFO"

    # Parsing / mapping defaults
    DEFAULT_DELIMITER: str = ","
    PREVIEW_LIMIT: int = 10
    SERVICE_TYPES: List[str] = ["Water", "Electric", "Gas"]
    DEFAULT_SERVICE_TYPE: str = "Water"
    GLOB_CASE_SENSITIVE: bool = True

    # Polling loop; the tick must not exceed the finest frequency (15 minutes)
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TICK_SECONDS: int = 60
    SCHEDULER_MAX_WORKERS: int = 4
    HISTORY_LIMIT: int = 50

settings = Settings()

# Ensure directories exist
os.makedirs(settings.DROP_DIR, exist_ok=True)
os.makedirs(os.path.dirname(settings.DB_PATH), exist_ok=True)
