"""
Application configuration using Pydantic Settings.
All environment-specific values are centralized here.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── App ──────────────────────────────────────────────
    app_name: str = "Gap Analysis Pipeline"
    debug: bool = False
    mock_mode: bool = True  # When True, stores are in-memory (no MongoDB)

    # ── LLM ──────────────────────────────────────────────
    groq_api_key: str = ""
    llm_model: str = "llama-3.3-70b-versatile"
    llm_max_tokens: int = 8192
    llm_top_p: float = 0.95
    extraction_temperature: float = 0.2
    analysis_temperature: float = 0.2
    llm_timeout_seconds: float = 60.0
    llm_max_retries: int = 2
    llm_retry_backoff_seconds: float = 1.0

    # ── Chunking ─────────────────────────────────────────
    chunk_max_size: int = 2000
    chunk_min_size: int = 400
    chunk_overlap: int = 200
    chunk_preserve_headers: bool = True

    # ── Pipeline Limits ──────────────────────────────────
    analysis_strategy: str = "multi_agent"  # "multi_agent" | "single_pass"
    max_requirements_per_batch: int = 25
    max_concurrent_llm_calls: int = 4

    # ── MongoDB ──────────────────────────────────────────
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "gap_analysis"

    # ── File Storage ─────────────────────────────────────
    local_storage_path: str = "./storage"
    plan_bucket: str = "plans"
    reference_bucket: str = "reference-documents"

    # ── API ──────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "*"

    # ── Logging ──────────────────────────────────────────
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
