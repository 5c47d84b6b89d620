from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    MONGODB_URI: str = "mongodb://mongodb:27017"
    MONGODB_DB_NAME: str = "daily_status"

    JWT_SECRET: str = "change_me"
    JWT_ALG: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MIN: int = 60 * 24

    # "development" exposes error messages in 500 responses
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    # Password given to users created without one (imports, manager-created accounts)
    DEFAULT_USER_PASSWORD: str = "12345678"

    # Excel import
    IMPORT_EMAIL_DOMAIN: str = "idsil.com"
    IMPORT_DEFAULT_PROJECT_NAME: str = "Default Project"
    IMPORT_MAX_FILE_MB: int = 10
    # Reject entries whose date header cannot be parsed instead of falling back to today
    IMPORT_STRICT_DATES: bool = False

    SEED_ADMIN_EMAIL: str = "admin@example.com"
    SEED_ADMIN_PASSWORD: str = "admin123"

    # Read from environment variables first, then from .env file, then use defaults
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() == "development"


settings = Settings()
