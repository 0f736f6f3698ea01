from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET_KEY: str = "super-secret-key-change-this"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    DATABASE_URL: str = "postgresql://farmsight:farmsight@db:5432/farmsight_db"
    SQL_ECHO: bool = False

    CORS_ORIGINS: List[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    # Alerting
    ALERT_COOLDOWN_HOURS: int = 24
    ALERT_MIN_CONFIDENCE: float = 0.7
    NDVI_HISTORY_LIMIT: int = 30
    FORECAST_DAYS: int = 14
    BULK_ANALYSIS_DELAY_SECONDS: float = 2.0

    # Outbound calls
    EXTERNAL_TIMEOUT_SECONDS: float = 30.0

    LLM_ENDPOINT: Optional[str] = None
    LLM_API_KEY: Optional[str] = None
    LLM_MODEL: str = "chatglm3-6b"

    NOTIFICATION_BACKEND: str = "log"  # "sms" or "log"
    SMS_ENDPOINT: Optional[str] = None
    SMS_APP_KEY: Optional[str] = None
    SMS_APP_SECRET: Optional[str] = None
    SMS_SENDER: str = "FarmSight"
    SMS_COUNTRY_CODE: str = "+62"

    IMAGERY_BACKEND: str = "synthetic"  # "stac" or "synthetic"
    STAC_URL: str = "https://earth-search.aws.element84.com/v1/search"

    class Config:
        env_file = ".env"


settings = Settings()
