from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "compliance"
    db_username: str = "compliance"
    db_password: str = "secret"

    max_event_attempts: int = 3
    event_poll_interval_seconds: int = 5
    # A claimed event whose lock is older than this is redelivered; keep it
    # above the longest expected run.
    event_lock_timeout_seconds: int = 3600

    storage_backend: str = "local"
    files_root: Path = Path("/app/files")

    default_language_code: str = "pt-BR"
    chunk_size: int = 100_000
    overlap_size: int = 10_000
    max_error_message_length: int = 1000

    stage_provider: str = "openai"
    stage_temperature: float = 0.2

    stage_openai_api_key: str = ""
    stage_openai_model_name: str = "gpt-4o-mini"
    stage_openai_timeout_seconds: int = 120

    stage_openai_compatible_base_url: str = ""
    stage_openai_compatible_api_key: str = ""
    stage_openai_compatible_model_name: str = ""
    stage_openai_compatible_timeout_seconds: int = 120

    stage_openrouter_api_key: str = ""
    stage_openrouter_model_name: str = ""
    stage_openrouter_timeout_seconds: int = 120

    stage_groq_api_key: str = ""
    stage_groq_model_name: str = ""
    stage_groq_timeout_seconds: int = 120

    stage_together_api_key: str = ""
    stage_together_model_name: str = ""
    stage_together_timeout_seconds: int = 120

    stage_deepseek_api_key: str = ""
    stage_deepseek_model_name: str = ""
    stage_deepseek_timeout_seconds: int = 120

    stage_ollama_api_key: str = "ollama"
    stage_ollama_model_name: str = ""
    stage_ollama_timeout_seconds: int = 300

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.overlap_size < self.chunk_size:
            raise ValueError(
                f"overlap_size must be between 0 and chunk_size - 1, got {self.overlap_size} "
                f"with chunk_size {self.chunk_size}"
            )
        return self
