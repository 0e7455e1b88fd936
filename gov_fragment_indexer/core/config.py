"""Configuration management using Pydantic Settings."""

from typing import List, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file if it exists
# In Docker/production, environment variables are set directly
from pathlib import Path

from dotenv import load_dotenv

ENV_FILE_OPT: str | None = None

# Only load .env if it exists (for local development)
_env_path = Path(".env")
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)
    ENV_FILE_OPT = str(_env_path)


class Settings(BaseSettings):
    """Application configuration.

    Loads settings from environment variables. In local development, these can be
    provided via a .env file. In Docker/production, they should be set directly.
    """

    model_config = SettingsConfigDict(
        # Only hint an env file to pydantic if it actually exists
        env_file=ENV_FILE_OPT,
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Application
    app_name: str = "Gov Fragment Indexer"
    log_level: str = Field(default="INFO", description="Logging level")

    # Redis
    redis_url: SecretStr = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    redis_password: Optional[SecretStr] = Field(default=None, description="Redis password")

    # Crawl bounds
    max_pages: int = Field(default=500, description="Maximum pages scheduled per run")
    max_depth: int = Field(default=3, description="Maximum link depth from a seed")
    max_links_per_page: int = Field(
        default=20, description="Top-N scored links followed from each page"
    )
    concurrency: int = Field(default=3, description="Concurrent page renders")
    crawl_delay: float = Field(
        default=1.0, description="Seconds to wait after each page before releasing its slot"
    )
    max_requests_per_second: float = Field(
        default=5.0, description="Request throughput ceiling before throttling"
    )
    exclude_patterns: List[str] = Field(
        default_factory=lambda: [r"/search", r"/login", r"/logout", r"\?print="],
        description="Regular expressions; matching URLs are never scheduled",
    )
    priority_patterns: List[str] = Field(
        default_factory=lambda: [r"/services?/", r"/payments?/", r"/life-events?/"],
        description="Regular expressions; matching URLs get a scoring boost",
    )
    use_sitemap: bool = Field(default=True, description="Seed the frontier from sitemap.xml")
    respect_robots: bool = Field(default=True, description="Honour robots.txt rules")

    # Retries and timeouts
    page_retries: int = Field(default=3, description="Attempts per page before giving up")
    retry_backoff: float = Field(default=1.0, description="Fixed delay between page retries")
    launch_timeout: float = Field(default=30.0, description="Browser launch timeout (seconds)")
    navigation_timeout: float = Field(
        default=30.0, description="Page navigation timeout (seconds)"
    )
    content_wait_timeout: float = Field(
        default=5.0, description="Main-content selector wait timeout (seconds)"
    )
    store_write_timeout: float = Field(default=30.0, description="Store write timeout (seconds)")

    # Browser
    browser_executable_path: Optional[str] = Field(
        default=None, description="Path to a Chromium binary; bundled browser when unset"
    )
    browser_headless: bool = Field(default=True, description="Run the browser headless")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; GovFragmentIndexer/1.0)",
        description="User agent for page and robots requests",
    )

    # Taxonomy
    taxonomy_path: Optional[str] = Field(
        default=None, description="Override path for the taxonomy JSON document"
    )
    life_event_graph_path: Optional[str] = Field(
        default=None, description="Override path for the life-event graph JSON document"
    )

    # Sync
    sync_batch_size: int = Field(default=100, description="Documents per store batch write")
    embedding_dim: int = Field(default=256, description="Hashed page embedding dimensions")


# Global settings instance
settings = Settings()
