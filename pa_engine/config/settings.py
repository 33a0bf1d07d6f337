"""Engine settings loaded from environment variables."""
from functools import lru_cache
from typing import Dict, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pa_engine.models.enums import EvaluationMode


class Settings(BaseSettings):
    """Engine configuration loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")

    # Configuration data (bundled defaults are used when unset)
    coverage_config_path: Optional[str] = Field(
        default=None,
        description="JSON file with the payer coverage catalog"
    )
    medication_reference_path: Optional[str] = Field(
        default=None,
        description="JSON file with the medication reference set"
    )

    # Alternative ranking
    alternatives_threshold_standard: int = Field(
        default=70, ge=0, le=100,
        description="Rank alternatives when likelihood falls below this (standard path)"
    )
    alternatives_threshold_legacy: int = Field(
        default=50, ge=0, le=100,
        description="Rank alternatives when likelihood falls below this (legacy simple path)"
    )
    max_alternatives: int = Field(default=3, ge=0, description="Maximum alternatives returned")

    # External drug metadata
    metadata_timeout_seconds: float = Field(default=4.0, gt=0, description="Per-call metadata lookup timeout")
    metadata_retry_attempts: int = Field(default=2, ge=1, description="Attempts per metadata lookup")

    # Metadata cache
    cache_database_url: str = Field(
        default="sqlite+aiosqlite:///./data/metadata_cache.db",
        description="Durable metadata cache database URL"
    )
    cache_echo: bool = Field(default=False, description="Log SQL statements issued by the cache store")
    cache_ttl_drug_identity: int = Field(default=24 * 60 * 60, description="Drug identity TTL (seconds)")
    cache_ttl_approval_info: int = Field(default=24 * 60 * 60, description="Approval info TTL (seconds)")
    cache_ttl_formulations: int = Field(default=24 * 60 * 60, description="Formulations TTL (seconds)")
    cache_ttl_evaluation: int = Field(default=15 * 60, description="Evaluation result TTL (seconds)")

    def alternatives_threshold(self, mode: EvaluationMode) -> int:
        """Likelihood below which alternatives are ranked for the given mode."""
        if mode == EvaluationMode.LEGACY:
            return self.alternatives_threshold_legacy
        return self.alternatives_threshold_standard

    def cache_ttls(self) -> Dict[str, int]:
        """TTL in seconds keyed by cache entry type."""
        return {
            "drug_identity": self.cache_ttl_drug_identity,
            "approval_info": self.cache_ttl_approval_info,
            "formulations": self.cache_ttl_formulations,
            "evaluation": self.cache_ttl_evaluation,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached engine settings."""
    return Settings()
