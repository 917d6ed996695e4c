from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Database
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = "postgres"
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "live_commerce"

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 5.0

    # JWT tokens issued by the auth service
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    # Commerce (orders) service
    COMMERCE_API_URL: str = "http://localhost:3001/api"
    COMMERCE_API_TOKEN: str = ""
    ORDER_WEBHOOK_SECRET: str = ""

    # Points engine
    POINTS_CONFIG_CACHE_TTL_SECONDS: int = 60
    POINTS_EXPIRY_WARNING_DAYS: int = 7
    POINTS_EXPIRATION_CRON_HOUR: int = 2
    POINTS_EXPIRATION_CRON_MINUTE: int = 0
    SCHEDULER_TIMEZONE: str = "Asia/Seoul"

    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS_STR: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(',') if origin.strip()]

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"

    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql+psycopg2://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    model_config = SettingsConfigDict(env_file=".env", populate_by_name=True, extra="ignore")

settings = Settings()
