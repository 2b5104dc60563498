import logging
import os
from typing import Optional

from pydantic import BaseModel

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseModel):
    """Process-wide configuration, built once at startup and injected."""

    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop_admin"
    environment: str = "production"

    jwt_secret: str = "dev-secret-change-me"
    access_token_expires_minutes: int = 60
    refresh_token_secret: str = "dev-refresh-secret-change-me"
    refresh_token_expires_days: int = 7
    otp_expiry_minutes: int = 15

    upload_dir: str = "uploads"
    max_upload_mb: int = 5

    superadmin_name: str = "Super Admin"
    superadmin_email: Optional[str] = None
    superadmin_password: Optional[str] = None

    log_level: str = "INFO"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        defaults = cls()
        return cls(
            database_url=env.get("DATABASE_URL", defaults.database_url),
            database_name=env.get("DATABASE_NAME", defaults.database_name),
            environment=env.get("ENVIRONMENT", defaults.environment),
            jwt_secret=env.get("JWT_SECRET", defaults.jwt_secret),
            access_token_expires_minutes=int(
                env.get("JWT_EXPIRES_MINUTES", defaults.access_token_expires_minutes)
            ),
            refresh_token_secret=env.get("REFRESH_TOKEN_SECRET", defaults.refresh_token_secret),
            refresh_token_expires_days=int(
                env.get("REFRESH_TOKEN_EXPIRES_DAYS", defaults.refresh_token_expires_days)
            ),
            otp_expiry_minutes=int(env.get("OTP_EXPIRY_MINUTES", defaults.otp_expiry_minutes)),
            upload_dir=env.get("UPLOAD_DIR", defaults.upload_dir),
            max_upload_mb=int(env.get("MAX_UPLOAD_MB", defaults.max_upload_mb)),
            superadmin_name=env.get("SUPERADMIN_NAME", defaults.superadmin_name),
            superadmin_email=env.get("SUPERADMIN_EMAIL"),
            superadmin_password=env.get("SUPERADMIN_PASSWORD"),
            log_level=env.get("LOG_LEVEL", defaults.log_level),
        )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
