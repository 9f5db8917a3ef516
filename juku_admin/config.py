from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- DB ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "juku"
    # full URL wins over the DB_* parts (sqlite for local runs and tests)
    DATABASE_URL: Optional[str] = None

    # --- JWT ---
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # --- LINE credentials at rest ---
    ENCRYPTION_KEY: str = "change-me-too"
    BASE_URL: str = "http://localhost:8000"

    # --- CSV import ---
    IMPORT_MAX_BYTES: int = 25 * 1024 * 1024
    IMPORT_RATE_CAPACITY: int = 2
    IMPORT_RATE_REFILL_PER_SEC: float = 0.1

    # --- Logging ---
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # --- API ---
    API_RATE_LIMIT_PER_MINUTE: int = 100
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


settings = Settings()
