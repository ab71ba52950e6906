from dataclasses import dataclass
from typing import ClassVar

from compliance_worker.config.settings import Settings
from compliance_worker.stages.client_base import BaseStageClient
from compliance_worker.stages.example_client_adapter import ExampleClientAdapter
from compliance_worker.stages.openai_client_adapter import OpenAIClientAdapter
from compliance_worker.stages.stages import (
    ComplianceAnalyzer,
    RegulationIdentifier,
    ReportReviewer,
    Summarizer,
)


@dataclass(frozen=True)
class StageSet:
    """The four AI stages of the analysis pipeline, in run order."""

    summarizer: Summarizer
    identifier: RegulationIdentifier
    analyzer: ComplianceAnalyzer
    reviewer: ReportReviewer


class StageClientFactory:
    """Creates the configured AI client and the stages that share it."""

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "openrouter": "https://openrouter.ai/api/v1",
        "groq": "https://api.groq.com/openai/v1",
        "together": "https://api.together.xyz/v1",
        "deepseek": "https://api.deepseek.com/v1",
        "ollama": "http://localhost:11434/v1",
    }

    @classmethod
    def create_stages(cls, settings: Settings) -> StageSet:
        """Build every stage on one client configured from application settings."""
        provider = settings.stage_provider.lower()
        client = cls.create_client(settings)
        options = {
            "client": client,
            "model": "example" if provider == "example" else cls._resolve_model_name(provider, settings),
            "temperature": settings.stage_temperature,
            "max_error_length": settings.max_error_message_length,
        }
        return StageSet(
            summarizer=Summarizer(**options),
            identifier=RegulationIdentifier(**options),
            analyzer=ComplianceAnalyzer(**options),
            reviewer=ReportReviewer(**options),
        )

    @classmethod
    def create_client(cls, settings: Settings) -> BaseStageClient:
        provider = settings.stage_provider.lower()
        if provider == "example":
            return ExampleClientAdapter()
        return OpenAIClientAdapter(
            api_key=cls._resolve_api_key(provider, settings),
            timeout_seconds=cls._resolve_timeout_seconds(provider, settings),
            base_url=cls._resolve_base_url(provider, settings),
        )

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        if provider == "openai_compatible":
            url = settings.stage_openai_compatible_base_url.strip()
            if not url:
                raise ValueError(
                    "stage_openai_compatible_base_url is required for "
                    "stage_provider=openai_compatible"
                )
            return url
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return default_base_url
        supported = [
            "example",
            "openai",
            "openai_compatible",
            *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS),
        ]
        raise ValueError(f"Unknown stage provider '{provider}'. Choose from: {supported}")

    @classmethod
    def _resolve_api_key(cls, provider: str, settings: Settings) -> str:
        return getattr(settings, f"stage_{provider}_api_key", "") or ""

    @classmethod
    def _resolve_model_name(cls, provider: str, settings: Settings) -> str:
        return getattr(settings, f"stage_{provider}_model_name", "") or ""

    @classmethod
    def _resolve_timeout_seconds(cls, provider: str, settings: Settings) -> int:
        return getattr(settings, f"stage_{provider}_timeout_seconds", 120) or 120
