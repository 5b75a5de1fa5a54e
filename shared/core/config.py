import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Always load .env from root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))


class Settings(BaseSettings):
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRE_MINUTES: int = int(os.getenv("JWT_EXPIRE_MINUTES", 1440))  # 24 hours default

    DB_USER: str | None = os.getenv("DB_USER")
    DB_PASS: str | None = os.getenv("DB_PASS")
    DB_HOST: str | None = os.getenv("DB_HOST")
    DB_PORT: str | None = os.getenv("DB_PORT")
    ROUTING_DB_NAME: str | None = os.getenv("ROUTING_DB_NAME")
    # Full URL wins over the DB_* parts (sqlite for local runs)
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")

    # Revenue routing
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "THB")
    # management | owner : side that absorbs the rounding residue of a split
    ROUNDING_DRIFT_RECIPIENT: str = os.getenv("ROUNDING_DRIFT_RECIPIENT", "management")
    AUDIT_WRITE_ATTEMPTS: int = int(os.getenv("AUDIT_WRITE_ATTEMPTS", 3))
    AUDIT_RETRY_BACKOFF_SECONDS: float = float(os.getenv("AUDIT_RETRY_BACKOFF_SECONDS", 0.1))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


def build_database_url(s: Settings = settings) -> str:
    if s.DATABASE_URL:
        return s.DATABASE_URL
    if s.DB_HOST:
        return (
            f"postgresql+psycopg2://{s.DB_USER}:{s.DB_PASS}@{s.DB_HOST}:{s.DB_PORT}/{s.ROUTING_DB_NAME}?sslmode=require"
        )
    return "sqlite:///./routing.db"


ROUTING_DATABASE_URL = build_database_url()
