import os
from typing import Any, Dict, List
from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings

# Load environment variables from the correct .env file
os.environ.setdefault("APP_ENV", "development")
env_file = ".env" if os.getenv("APP_ENV") == "development" else ".env.production"
load_dotenv(env_file)  # Load the .env file

class Settings(BaseSettings):
    APP_ENV: str = "development"
    DEBUG: bool = False
    DATABASE_URL: str
    ALEMBIC_DATABASE_URL: str = ""
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ALLOWED_ORIGINS: List[str] = ["*"]
    LOG_LEVEL: str = "info"

    # Routing oracle (Nominatim geocoder + OSRM driving routes)
    GEOCODER_URL: str = "https://nominatim.openstreetmap.org/search"
    ROUTER_URL: str = "https://router.project-osrm.org/route/v1/driving"
    ROUTING_TIMEOUT_SECONDS: float = 10.0
    ROUTING_USER_AGENT: str = "ridecare-api/1.0"

    # Share of each completed fare retained by the platform (0.10 == 10%)
    PLATFORM_COMMISSION_RATE: float = 0.0

    # Domain event stream
    EVENT_STALE_SECONDS: int = 10
    EVENT_QUEUE_SIZE: int = 100

    @field_validator("ALLOWED_ORIGINS", mode="before")
    def split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def LOGGING_CONFIG(self) -> Dict[str, Any]:
        level = self.LOG_LEVEL.upper()
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "src": {"handlers": ["console"], "level": level, "propagate": False},
                "sqlalchemy.engine": {"level": "INFO" if self.DEBUG else "WARNING"},
            },
            "root": {"handlers": ["console"], "level": "WARNING"},
        }

settings = Settings()
