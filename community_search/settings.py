import enum
import os
from pathlib import Path
from tempfile import gettempdir
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from yarl import URL

TEMP_DIR = Path(gettempdir())


class LogLevel(str, enum.Enum):  # noqa: WPS600
    """Possible log levels."""

    NOTSET = "NOTSET"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"


class Settings(BaseSettings):
    """
    Application settings.

    These parameters can be configured
    with environment variables.
    """

    host: str = "localhost"
    port: int = 8000
    # quantity of workers for uvicorn
    workers_count: int = 1
    # Enable uvicorn reloading
    reload: bool = False

    # Current environment
    environment: str = "dev"

    log_level: LogLevel = LogLevel.INFO
    enable_file_logging: bool = False
    logs_dir: Optional[str] = None
    structured_logging: bool = False

    # Qdrant Vector DB settings
    qdrant_host: str = "localhost"
    qdrant_port: int = 6333
    qdrant_api_key: Optional[str] = None
    qdrant_timeout: int = 30  # Seconds
    # ":memory:" or a local path switches the client to embedded mode
    qdrant_location: Optional[str] = None
    qdrant_collection_name: str = "services"

    # OpenAI settings
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_base_url: Optional[str] = None
    openai_embedding_model: str = "text-embedding-3-large"
    embedding_timeout: float = 30.0  # Seconds

    # Batch embedding job
    embedding_batch_size: int = 10
    embedding_batch_delay: float = 1.0  # Seconds between batches
    embedding_retry_attempts: int = 3
    embedding_retry_base_delay: float = 1.0
    embedding_retry_max_delay: float = 10.0
    embedding_retry_jitter: float = 0.5
    embedding_checkpoint_path: str = str(TEMP_DIR / "community_search_embeddings.json")

    # Search tuning
    search_default_limit: int = 10
    vector_min_score: float = 0.5
    # Hybrid search gets a lower floor since the text boost recovers precision
    hybrid_min_score: float = 0.3
    hybrid_text_boost: float = 0.2

    @property
    def qdrant_url(self) -> URL:
        """
        Assemble Qdrant URL from settings.

        :return: qdrant URL.
        """
        return URL.build(
            scheme="http",
            host=self.qdrant_host,
            port=self.qdrant_port,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="COMMUNITY_SEARCH_",
    )


settings = Settings()
