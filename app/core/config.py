from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite+aiosqlite:///./tutoring.db", alias="DATABASE_URL")

    jwt_secret_key: str = Field("change-me-to-a-long-random-secret", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Sunday-Saturday quota week is computed in this zone
    quota_timezone: str = Field("UTC", alias="QUOTA_TIMEZONE")
    require_approved_request_for_scheduling: bool = Field(
        False, alias="REQUIRE_APPROVED_REQUEST_FOR_SCHEDULING"
    )
    revalidate_quota_on_reschedule: bool = Field(False, alias="REVALIDATE_QUOTA_ON_RESCHEDULE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


settings = Settings()
