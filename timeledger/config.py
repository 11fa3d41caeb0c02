from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_TITLE: str = "Timeledger"
    MONGODB_URL: str
    MONGODB_DB_NAME: str = "timeledger"
    PRODUCTION_MODE: bool = False
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    SHARE_LINK_BASE_URL: str = "http://localhost:3000"
    SHARE_LINK_DEFAULT_TTL_DAYS: int = 7
    SHARE_LINK_MAX_TTL_DAYS: int = 90
    DEFAULT_TIMEZONE_OFFSET: str = "UTC"
    DEFAULT_CURRENCY: str = "USD"
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:5173"]

    class Config:
        env_file = ".env"

settings = Settings()
