from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Wish list source
    WISHLIST_SOURCE: str = "https://raw.githubusercontent.com/48klocs/dim-wish-list-sources/master/voltron.txt"
    WISHLIST_REFRESH_INTERVAL_SECONDS: int = 86400  # 24h
    WISHLIST_REFRESH_ON_START: bool = True

    # Persistence
    STATE_PATH: str = "/data/wishlist_state.json"
    PERSIST_ENABLED: bool = True

    # Network
    REQUEST_TIMEOUT_SECONDS: int = 30
    USER_AGENT: str = "wishlist-sync/0.1"

    # System
    LOG_LEVEL: str = "INFO"
    HTTP_SERVER_ENABLED: bool = True
    HTTP_SERVER_PORT: int = 8080
    HTTP_SERVER_TOKEN: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
