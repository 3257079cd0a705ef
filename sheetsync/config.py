"""
Application configuration with automatic environment detection
"""
import os
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()

class Settings:
    """Application settings with automatic environment detection"""

    # Environment detection
    ENV = os.getenv("ENV", "DEV").upper()
    IS_PRODUCTION = ENV == "PROD" or ENV == "PRODUCTION"
    IS_DEVELOPMENT = not IS_PRODUCTION

    # Render sets RENDER=true, Heroku sets DYNO, Railway sets RAILWAY_ENVIRONMENT
    RENDER = os.getenv("RENDER", "").lower() == "true"
    HEROKU = bool(os.getenv("DYNO"))
    RAILWAY = bool(os.getenv("RAILWAY_ENVIRONMENT"))
    IS_CLOUD = RENDER or HEROKU or RAILWAY

    # Server configuration
    HOST = os.getenv("HOST", "0.0.0.0" if IS_CLOUD else "127.0.0.1")
    PORT = int(os.getenv("PORT", 8000))

    # Database (sync run history only; channel configs live on the remote API)
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./sheetsync.db")

    # Remote spreadsheet / order API (GraphQL)
    SHEETS_API_URL = os.getenv("SHEETS_API_URL", "https://api.wilo.site/graphql")
    SHEETS_API_TOKEN = os.getenv("SHEETS_API_TOKEN", "")
    SHEETS_API_TIMEOUT = float(os.getenv("SHEETS_API_TIMEOUT", "30"))
    SHEETS_API_RETRIES = int(os.getenv("SHEETS_API_RETRIES", "2"))

    # Spreadsheet id validation fires once typing pauses this long
    VALIDATION_DEBOUNCE_SECONDS = float(os.getenv("VALIDATION_DEBOUNCE_SECONDS", "0.8"))

    # Channel defaults before any configuration is loaded
    DEFAULT_NEW_SHEET_NAME = os.getenv("DEFAULT_NEW_SHEET_NAME", "Sheet1")
    DEFAULT_ABANDONED_SHEET_NAME = os.getenv("DEFAULT_ABANDONED_SHEET_NAME", "Abandoned")

    # Sheet titles the backend creates inside a new spreadsheet file
    CREATED_NEW_SHEET_NAME = os.getenv("CREATED_NEW_SHEET_NAME", "الطلبات الجديدة")
    CREATED_ABANDONED_SHEET_NAME = os.getenv("CREATED_ABANDONED_SHEET_NAME", "الطلبات المتروكة")

    # Auto-sync worker
    AUTO_SYNC_WORKER_ENABLED = os.getenv("AUTO_SYNC_WORKER_ENABLED", "true").lower() in ("1", "true", "yes")
    AUTO_SYNC_INTERVAL_SEC = int(os.getenv("AUTO_SYNC_INTERVAL_SEC", "300"))  # 5 min
    AUTO_SYNC_FIRST_DELAY_SEC = int(os.getenv("AUTO_SYNC_FIRST_DELAY_SEC", "60"))
    # Accounts the auto-sync worker loads itself, so syncing resumes after a restart
    AUTO_SYNC_ACCOUNT_IDS = [a.strip() for a in os.getenv("AUTO_SYNC_ACCOUNT_IDS", "").split(",") if a.strip()]

    # CORS - Fully dynamic based on ALLOWED_ORIGINS environment variable
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        """Get allowed CORS origins - fully dynamic from environment variable"""
        origins = []

        # Always add localhost origins in development (for local testing)
        if self.IS_DEVELOPMENT:
            origins.extend([
                "http://localhost:3000",
                "http://127.0.0.1:3000",
                "http://localhost:5173",
                "http://127.0.0.1:5173",
            ])

        env_origins = os.getenv("ALLOWED_ORIGINS", "")
        if env_origins:
            for origin in env_origins.split(","):
                origin = origin.strip()
                if origin:
                    origins.append(origin)

        # Remove duplicates while preserving order
        seen = set()
        unique_origins = []
        for origin in origins:
            if origin not in seen:
                seen.add(origin)
                unique_origins.append(origin)

        return unique_origins

    @property
    def CORS_ORIGIN_REGEX(self) -> Optional[str]:
        """Get CORS origin regex pattern - optional, only if CORS_ORIGIN_REGEX env var is set"""
        regex = os.getenv("CORS_ORIGIN_REGEX", "")
        if regex:
            return regex

        # In development, allow any localhost port for flexibility
        if self.IS_DEVELOPMENT:
            return r"http://localhost:\d+|http://127\.0\.0\.1:\d+"

        return None

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if IS_PRODUCTION else "DEBUG")

    # API Configuration
    API_PREFIX = "/api"

    def __str__(self):
        return f"Settings(ENV={self.ENV}, IS_PRODUCTION={self.IS_PRODUCTION}, IS_CLOUD={self.IS_CLOUD})"

# Global settings instance
settings = Settings()
