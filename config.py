import os
from typing import List, Optional

from passlib.context import CryptContext
from pydantic import BaseModel

from errors import ConfigurationError

DEV_SECRET = "super-secret-key-change"
DEFAULT_ORIGINS = ("http://localhost:3000", "http://localhost:3001")

# Use pbkdf2_sha256 to avoid external bcrypt dependency issues
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


class Settings(BaseModel):
    """Process-wide configuration, built once at startup and passed around."""

    environment: str = "development"
    allowed_origins: List[str] = list(DEFAULT_ORIGINS)
    jwt_secret: str = DEV_SECRET
    jwt_algorithm: str = "HS256"
    session_ttl_minutes: int = 60 * 12
    admin_email: str = "admin@portfolio.dev"
    admin_password_hash: str = ""
    database_url: Optional[str] = None
    database_name: str = "portfolio"
    openrouter_api_key: Optional[str] = None
    draft_model: str = "deepseek/deepseek-r1-0528:free"
    draft_timeout_seconds: float = 20.0
    uploads_dir: str = "/tmp"
    log_level: str = "INFO"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def secure_cookies(self) -> bool:
        return self.is_production

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.getenv("ENVIRONMENT", "development").strip().lower()
        secret = os.getenv("JWT_SECRET", DEV_SECRET)
        if environment == "production" and secret == DEV_SECRET:
            raise ConfigurationError("JWT_SECRET must be set in production")

        # Support providing a precomputed hash; otherwise hash the provided password
        password_hash = os.getenv("ADMIN_PASSWORD_HASH") or pwd_context.hash(
            os.getenv("ADMIN_PASSWORD", "admin123")
        )

        origins = os.getenv("ALLOWED_ORIGINS")
        return cls(
            environment=environment,
            allowed_origins=_split_origins(origins) if origins is not None else list(DEFAULT_ORIGINS),
            jwt_secret=secret,
            session_ttl_minutes=int(os.getenv("SESSION_TTL_MINUTES", str(60 * 12))),
            admin_email=os.getenv("ADMIN_EMAIL", "admin@portfolio.dev"),
            admin_password_hash=password_hash,
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME", "portfolio"),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
            draft_model=os.getenv("DRAFT_MODEL", "deepseek/deepseek-r1-0528:free"),
            draft_timeout_seconds=float(os.getenv("DRAFT_TIMEOUT_SECONDS", "20")),
            uploads_dir=os.getenv("UPLOADS_DIR", "/tmp"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)
