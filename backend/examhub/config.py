"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DATABASE_URL: str
    LOCKOUT_MAX_ATTEMPTS: int
    LOCKOUT_HOURS: int
    RESET_TOKEN_MINUTES: int
    VERIFY_TOKEN_HOURS: int
    EXPOSE_TOKENS: bool

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.LOCKOUT_MAX_ATTEMPTS = int(os.getenv("LOCKOUT_MAX_ATTEMPTS", "5"))
        self.LOCKOUT_HOURS = int(os.getenv("LOCKOUT_HOURS", "2"))
        self.RESET_TOKEN_MINUTES = int(os.getenv("RESET_TOKEN_MINUTES", "10"))
        self.VERIFY_TOKEN_HOURS = int(os.getenv("VERIFY_TOKEN_HOURS", "24"))
        # no mailer exists, so dev builds hand the raw secret back to the caller
        default_expose = "true" if self.ENV == "dev" else "false"
        self.EXPOSE_TOKENS = os.getenv("EXPOSE_TOKENS", default_expose).lower() == "true"
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        for name in ("JWT_EXPIRE_HOURS", "LOCKOUT_MAX_ATTEMPTS", "LOCKOUT_HOURS", "RESET_TOKEN_MINUTES", "VERIFY_TOKEN_HOURS"):
            if getattr(self, name) <= 0:
                raise RuntimeError(f"{name} must be a positive integer")


settings = Settings()
