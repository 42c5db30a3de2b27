"""
Settings module for environment-aware configuration.

Manages the LLM backend selection, retry and pacing knobs, word-count
policy, pricing and export credentials.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Backend
    llm_provider: Literal["gemini", "ollama", "sse"] = "gemini"
    google_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    llm_temperature: float = 0.7
    llm_stream: bool = False
    llm_timeout: float = 120.0

    # Ollama / relay endpoints
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama2"
    sse_generate_url: str = "http://localhost:8000/api/generate"

    # Environment Configuration
    environment: Literal["dev", "test", "prod"] = "dev"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Rate Limiting & Retries
    max_retries: int = 3
    retry_delay: float = 1.0

    # Batch Scheduling
    batch_size: int = 5
    parallel_topics: bool = False
    topic_delay: float = 0.5

    # Section word-count policy
    min_words_intro_conclusion: int = 150
    min_words_body: int = 300

    # Pricing (USD per 1K tokens)
    input_cost_per_1k: float = 0.03
    output_cost_per_1k: float = 0.06
    min_cost: float = 0.01

    # Google Sheets export
    google_service_account_json: str = ""
    google_service_account_file: str = ""
    google_sheets_share_anyone: bool = True

    # File Paths
    output_dir: Path = Path("outputs")

    def __init__(self, **kwargs):
        """Initialize settings and create the output directory."""
        super().__init__(**kwargs)
        self.output_dir.mkdir(exist_ok=True, parents=True)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()
