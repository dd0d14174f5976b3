from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ZIPSHARE_API_URL: str = "https://api.zipshare.io"
    ZIPSHARE_API_KEY: str | None = None
    ZIPSHARE_SOCKET_URL: str | None = None
    API_PREFIX: str = "/api"

    CHUNK_SIZE: int = 5 * 1024 * 1024
    MAX_RETRIES: int = 3
    RETRY_DELAY: float = 1.0
    REQUEST_TIMEOUT: float = 300.0

    JOIN_TIMEOUT: float = 10.0
    HEARTBEAT_INTERVAL: float = 30.0

    DEFAULT_LIST_LIMIT: int = 10
    MAX_LIST_LIMIT: int = 50
    DEFAULT_EXPIRES_IN_HOURS: int = 168

    ALLOW_ORIGINS: List[str] = ["http://localhost:5173"]
    MAX_CONTENT_LENGTH: int = 1024 * 1024
    LOG_LEVEL: str = "INFO"


settings = Settings()
