from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    # Unset or empty means the service runs without order persistence
    DATABASE_URL: Optional[str] = None
    DB_MAX_OPEN_CONNS: int = 25
    DB_MAX_IDLE_CONNS: int = 5
    DB_CONN_MAX_LIFETIME_SECONDS: int = 300
    DB_CONNECT_TIMEOUT_SECONDS: float = 5.0
    DB_POOL_TIMEOUT_SECONDS: float = 5.0
    DB_QUERY_TIMEOUT_SECONDS: Optional[float] = None

    LOG_LEVEL: str = "INFO"
    SERVICE_VERSION: str = "1.0.0"

    class Config:
        env_file = ".env"

    @property
    def persistence_enabled(self) -> bool:
        return bool(self.DATABASE_URL and self.DATABASE_URL.strip())

@lru_cache
def get_settings() -> Settings:
    return Settings()
