from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Client side (admin screen)
    ajax_url: str = Field(
        default="http://localhost:8004/wp-admin/admin-ajax.php",
        alias="SEOAUTOFIX_AJAX_URL",
    )
    nonce: str = Field(default="", alias="SEOAUTOFIX_NONCE")
    module: str = Field(default="broken_links", alias="SEOAUTOFIX_MODULE")
    per_page: int = Field(default=25, alias="SEOAUTOFIX_PER_PAGE")
    batch_delay: float = Field(default=0.5, alias="SEOAUTOFIX_BATCH_DELAY")
    completion_delay: float = Field(default=1.5, alias="SEOAUTOFIX_COMPLETION_DELAY")
    batch_timeout: Optional[float] = Field(default=60.0, alias="SEOAUTOFIX_BATCH_TIMEOUT")
    request_timeout: float = Field(default=30.0, alias="SEOAUTOFIX_REQUEST_TIMEOUT")

    # Service side
    database_path: str = Field(default="data/seoautofix.db", alias="SEOAUTOFIX_DATABASE_PATH")
    findings_path: Optional[str] = Field(default=None, alias="SEOAUTOFIX_FINDINGS_PATH")
    image_findings_path: Optional[str] = Field(default=None, alias="SEOAUTOFIX_IMAGE_FINDINGS_PATH")
    batch_size: int = Field(default=5, alias="SEOAUTOFIX_BATCH_SIZE")
    api_host: str = Field(default="0.0.0.0", alias="SEOAUTOFIX_API_HOST")
    api_port: int = Field(default=8004, alias="SEOAUTOFIX_API_PORT")

    slack_webhook_url: Optional[str] = Field(default=None, alias="SLACK_WEBHOOK_URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def ensure_data_dir(db_path: Path) -> None:
    """Create the parent directory of the SQLite database if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
