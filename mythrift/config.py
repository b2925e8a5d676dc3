from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "mythrift"

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60

    # pub/sub fan-out between worker processes; unset = single process
    redis_url: Optional[str] = None
    realtime_channel: str = "mythrift:realtime"

    frontend_url: str = "http://localhost:5173"

    # websocket heartbeat, seconds
    ws_ping_interval: float = 25.0
    ws_ping_timeout: float = 60.0

    append_max_retries: int = 16

    log_level: str = "INFO"
    log_file: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    return Settings()
