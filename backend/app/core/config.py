"""
Configuración centralizada de la aplicación
"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Configuración de la aplicación"""

    # API Settings
    API_TITLE: str = "Grocery POS API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Point-of-sale settlement engine for grocery checkouts"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_DEBUG: bool = False

    # Database
    # "postgres" uses DATABASE_URL, "memory" keeps everything in-process (dev/demo)
    STORAGE_BACKEND: str = "postgres"
    DATABASE_URL: Optional[str] = None
    CONNECTION_TIMEOUT: int = 10

    # Auth (tokens are issued by the session service, we only decode them)
    AUTH_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"

    # Settlement policy
    STRICT_COUPONS: bool = False
    STORE_TIMEZONE: str = "America/New_York"

    LOG_LEVEL: str = "INFO"

    # CORS - Can be string (comma-separated) or JSON array
    # Example: "http://localhost:3000,https://yourdomain.com" or '["http://localhost:3000"]'
    ALLOWED_ORIGINS: Optional[str] = "http://localhost:3000,http://localhost:3001"

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into list"""
        if not self.ALLOWED_ORIGINS:
            return ["http://localhost:3000"]

        # Try JSON parse first (for array format)
        import json
        try:
            origins = json.loads(self.ALLOWED_ORIGINS)
            if isinstance(origins, list):
                return origins
        except (json.JSONDecodeError, ValueError):
            pass

        # Fall back to comma-separated string
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
