"""
Configuration module for Vanishpaste.
Loads environment variables and provides config objects.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
        self.REDIS_KEY_PREFIX: str = os.getenv("REDIS_KEY_PREFIX", "paste:")
        self.REDIS_SOCKET_TIMEOUT: float = float(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))
        self.DEBUG: bool = _env_flag("DEBUG", "False")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.APP_DOMAIN: str = os.getenv("APP_DOMAIN", "")
        self.ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development").lower()
        self.TEST_MODE: bool = _env_flag("TEST_MODE", "0")
        self.ALLOW_MEMORY_FALLBACK: bool = _env_flag(
            "ALLOW_MEMORY_FALLBACK",
            "False" if self.is_production else "True",
        )
        self.ID_LENGTH: int = int(os.getenv("ID_LENGTH", "21"))
        self.ID_MAX_ATTEMPTS: int = int(os.getenv("ID_MAX_ATTEMPTS", "5"))
        self.SWEEP_INTERVAL_SECONDS: int = int(os.getenv("SWEEP_INTERVAL_SECONDS", "0"))

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def reference_time_override_enabled(self) -> bool:
        """The x-test-now-ms header is only trusted in test mode outside production."""
        return self.TEST_MODE and not self.is_production


settings = Settings()
