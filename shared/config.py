from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    aws_region: str = "us-east-1"
    aws_bucket_name: str = ""
    aws_endpoint_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    signed_url_expires_seconds: int = 3600
    signed_url_refresh_threshold_seconds: int = 300
    log_level: str = "INFO"

    class Config:
        env_prefix = ""


@lru_cache
def get_settings() -> Settings:
    return Settings()
