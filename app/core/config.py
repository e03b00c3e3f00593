import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    PROJECT_NAME: str = "TenderAward"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgres://postgres:password@db:5432/tenderaward")
    SECRET_KEY: str = os.getenv("SECRET_KEY", "supersecretkey")
    ALGORITHM = "HS256"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Technical evaluation: score >= threshold qualifies the bid
    TECH_QUALIFY_THRESHOLD: float = float(os.getenv("TECH_QUALIFY_THRESHOLD", "70"))

    # Document store
    STORAGE_ROOT: str = os.getenv("STORAGE_ROOT", "uploads")
    STORAGE_MAX_RETRIES: int = int(os.getenv("STORAGE_MAX_RETRIES", "3"))
    STORAGE_RETRY_BACKOFF: float = float(os.getenv("STORAGE_RETRY_BACKOFF", "0.5"))  # seconds, linear
    SIGNED_URL_TTL_SECONDS: int = int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600"))
    PUBLIC_BASE_URL: str = os.getenv("PUBLIC_BASE_URL", "")

    # Redis cache
    REDIS_HOST: str = os.getenv("REDIS_HOST", "redis")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_DB: int = int(os.getenv("REDIS_DB", "0"))
    CACHE_ENABLED: bool = os.getenv("CACHE_ENABLED", "true").lower() == "true"
    CACHE_TTL: int = int(os.getenv("CACHE_TTL", "300"))

    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

    # Carnival stalls: approvals beyond total_stalls are only reported unless enforced
    CARNIVAL_ENFORCE_CAPACITY: bool = os.getenv("CARNIVAL_ENFORCE_CAPACITY", "false").lower() == "true"

    def get_database_url(self):
        url = self.DATABASE_URL
        # Fix for SQLAlchemy compatibility (if using 'postgres://' instead of 'postgresql+psycopg2://')
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql+psycopg2://", 1)
        return url

settings = Settings()
