import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./billing.db")
DATABASE_SERVICE_ROLE_KEY = os.getenv("DATABASE_SERVICE_ROLE_KEY")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Managed auth (JWTs issued by the auth provider)
AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE", "authenticated")

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_WEBHOOK_TOLERANCE = os.getenv("STRIPE_WEBHOOK_TOLERANCE")

# ✅ App
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, resolved once at process start."""
    database_url: str
    service_role_key: Optional[str] = None
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_webhook_tolerance: Optional[int] = None
    auth_jwt_secret: Optional[str] = None
    auth_jwt_algorithm: str = "HS256"
    auth_jwt_audience: Optional[str] = "authenticated"
    app_base_url: str = "http://localhost:3000"
    cors_origins: str = ""

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def _parse_tolerance(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    tolerance = int(value)
    return tolerance if tolerance > 0 else None


@lru_cache()
def get_settings() -> Settings:
    """Build settings from the environment. Used as a FastAPI dependency."""
    return Settings(
        database_url=DATABASE_URL,
        service_role_key=DATABASE_SERVICE_ROLE_KEY,
        stripe_secret_key=STRIPE_SECRET_KEY,
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        stripe_webhook_tolerance=_parse_tolerance(STRIPE_WEBHOOK_TOLERANCE),
        auth_jwt_secret=AUTH_JWT_SECRET,
        auth_jwt_algorithm=AUTH_JWT_ALGORITHM,
        auth_jwt_audience=AUTH_JWT_AUDIENCE or None,
        app_base_url=APP_BASE_URL.rstrip("/"),
        cors_origins=CORS_ORIGINS,
    )
