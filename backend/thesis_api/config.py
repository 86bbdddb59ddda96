"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent

DEFAULT_ALLOWED_DOMAINS = "sudamericano.edu.ec,gmail.com,outlook.com,hotmail.com,yahoo.com,icloud.com"
DEFAULT_ALLOWED_SUFFIXES = ".edu.ec,.gob.ec,.org.ec,.com.ec,.net.ec,.ec,.com,.edu"


def _csv(value: str):
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Settings:
    ENV: str
    LOG_LEVEL: str
    DATABASE_URL: str
    DB_POOL_SIZE: int
    DB_CONNECT_TIMEOUT_SECONDS: int
    DB_IDLE_TIMEOUT_SECONDS: int
    TRANSACTION_TIMEOUT_SECONDS: float
    JWT_SECRET: str
    JWT_ALGORITHM: str
    ACCESS_TOKEN_EXPIRE_HOURS: int
    REFRESH_TOKEN_EXPIRE_DAYS: int
    ALLOW_INSECURE_JWT: bool
    RESET_TOKEN_EXPIRE_MINUTES: int
    FRONTEND_URL: str
    MAIL_HOST: str
    MAIL_PORT: int
    MAIL_USER: str
    MAIL_PASSWORD: str
    MAIL_FROM: str
    MAIL_USE_SSL: bool
    MAIL_TIMEOUT_SECONDS: float
    ALLOWED_EMAIL_DOMAINS: list
    ALLOWED_EMAIL_SUFFIXES: list
    UPLOAD_DIR: Path
    UPLOAD_URL_PREFIX: str
    MAX_UPLOAD_BYTES: int
    ALLOW_DEV_CORS: bool
    CORS_ORIGINS: list
    CORS_ORIGIN_REGEX: str
    AUTH_RATE_LIMIT_PER_MIN: int
    AUTH_RATE_LIMIT_WINDOW_SECONDS: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
        self.DB_CONNECT_TIMEOUT_SECONDS = int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "10"))
        self.DB_IDLE_TIMEOUT_SECONDS = int(os.getenv("DB_IDLE_TIMEOUT_SECONDS", "30"))
        self.TRANSACTION_TIMEOUT_SECONDS = float(os.getenv("TRANSACTION_TIMEOUT_SECONDS", "10"))

        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "48"))  # 2 days
        self.REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "60"))

        self.FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
        self.MAIL_HOST = os.getenv("MAIL_HOST", "")
        self.MAIL_PORT = int(os.getenv("MAIL_PORT", "465"))
        self.MAIL_USER = os.getenv("MAIL_USER", "")
        self.MAIL_PASSWORD = os.getenv("MAIL_PASSWORD", "")
        self.MAIL_FROM = os.getenv("MAIL_FROM", self.MAIL_USER or "no-reply@localhost")
        self.MAIL_USE_SSL = os.getenv("MAIL_USE_SSL", "true").lower() == "true"
        self.MAIL_TIMEOUT_SECONDS = float(os.getenv("MAIL_TIMEOUT_SECONDS", "15"))

        self.ALLOWED_EMAIL_DOMAINS = _csv(os.getenv("ALLOWED_EMAIL_DOMAINS", DEFAULT_ALLOWED_DOMAINS))
        self.ALLOWED_EMAIL_SUFFIXES = _csv(os.getenv("ALLOWED_EMAIL_SUFFIXES", DEFAULT_ALLOWED_SUFFIXES))

        self.UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE / "uploads"))).expanduser().resolve()
        self.UPLOAD_URL_PREFIX = "/uploads"
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))  # 5 MB default

        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost").split(",") if o.strip()]
        self.CORS_ORIGIN_REGEX = os.getenv(
            "CORS_ORIGIN_REGEX", r"https://.*\.(vercel\.app|devtunnels\.ms|onrender\.com)"
        )

        self.AUTH_RATE_LIMIT_PER_MIN = int(os.getenv("AUTH_RATE_LIMIT_PER_MIN", "30"))
        self.AUTH_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("AUTH_RATE_LIMIT_WINDOW_SECONDS", "60"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.TRANSACTION_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("TRANSACTION_TIMEOUT_SECONDS must be positive")


settings = Settings()
