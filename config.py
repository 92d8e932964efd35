"""
Centralized configuration for Framework Analyzer
All environment variables and settings are defined here
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field, field_validator

# Kept in sync with analyzer.frameworks.FrameworkId
KNOWN_FRAMEWORKS = ("golden_circle", "b2c_elements", "b2b_elements", "clifton_strengths")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Provides centralized configuration with validation and defaults.
    """

    # ======================
    # API Configuration
    # ======================
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")
    ANTHROPIC_MODEL: str = Field(
        default="claude-sonnet-4-20250514",
        description="Claude model to use for framework evaluations"
    )
    MAX_TOKENS: int = Field(default=4000, description="Max tokens for Claude response")

    # ======================
    # Redis Configuration
    # ======================
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )

    # ======================
    # Celery Configuration
    # ======================
    CELERY_BROKER_URL: Optional[str] = Field(
        default=None,
        description="Celery broker URL (defaults to REDIS_URL if not set)"
    )
    CELERY_RESULT_BACKEND: str = Field(
        default="redis://localhost:6379/1",
        description="Celery result backend URL"
    )
    CELERY_RESULT_EXPIRES: int = Field(
        default=259200,  # 72 hours (3 days)
        description="Time in seconds before task results expire"
    )

    # ======================
    # Task Configuration
    # ======================
    TASK_TIME_LIMIT: int = Field(
        default=720,  # 12 minutes
        description="Hard time limit for worker tasks in seconds"
    )
    TASK_SOFT_TIME_LIMIT: int = Field(
        default=600,  # 10 minutes
        description="Soft time limit for worker tasks in seconds"
    )
    WORKER_PREFETCH_MULTIPLIER: int = Field(
        default=1,
        description="Tasks to prefetch per worker"
    )
    WORKER_MAX_TASKS_PER_CHILD: int = Field(
        default=10,
        description="Max tasks before worker restart"
    )
    API_WORKERS: int = Field(
        default=1,
        description="Number of Uvicorn workers for API"
    )

    # ======================
    # Analysis Configuration
    # ======================
    RUN_STORE: str = Field(
        default="redis",
        description="Where analysis runs are persisted: 'redis' or 'memory'"
    )
    EXECUTION_MODE: str = Field(
        default="inline",
        description="'inline' runs analyses as asyncio tasks in the API process, 'celery' hands them to workers"
    )
    ENABLED_FRAMEWORKS: str = Field(
        default=",".join(KNOWN_FRAMEWORKS),
        description="Comma-separated frameworks evaluated in Phase 2, in step order"
    )
    SCRAPE_TIMEOUT: float = Field(
        default=60.0,
        description="Deadline for content acquisition in seconds"
    )
    FRAMEWORK_TIMEOUT: float = Field(
        default=120.0,
        description="Per-framework evaluation deadline in seconds"
    )
    FRAMEWORK_MAX_CONCURRENCY: int = Field(
        default=4,
        description="Max framework evaluations in flight per run"
    )
    SYNTHESIS_TIMEOUT: float = Field(
        default=90.0,
        description="Deadline for report synthesis in seconds"
    )
    REPORT_AI_SUMMARY: bool = Field(
        default=True,
        description="Ask Claude for an executive summary when building the report"
    )
    FALLBACK_EXCERPT_CHARS: int = Field(
        default=3000,
        description="Max characters of page text embedded in a fallback document"
    )
    RUN_RETENTION_SECONDS: int = Field(
        default=0,
        description="Expire persisted runs after this many seconds (0 = keep forever)"
    )

    # ======================
    # Logging Configuration
    # ======================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("ENABLED_FRAMEWORKS")
    @classmethod
    def _check_frameworks(cls, value: str) -> str:
        names = [part.strip() for part in value.split(",") if part.strip()]
        unknown = [name for name in names if name not in KNOWN_FRAMEWORKS]
        if unknown:
            raise ValueError(f"Unknown frameworks: {', '.join(unknown)}")
        if not names:
            raise ValueError("At least one framework must be enabled")
        return ",".join(names)

    @field_validator("RUN_STORE")
    @classmethod
    def _check_store(cls, value: str) -> str:
        value = value.lower()
        if value not in ("redis", "memory"):
            raise ValueError("RUN_STORE must be 'redis' or 'memory'")
        return value

    @field_validator("EXECUTION_MODE")
    @classmethod
    def _check_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in ("inline", "celery"):
            raise ValueError("EXECUTION_MODE must be 'inline' or 'celery'")
        return value

    @property
    def enabled_frameworks(self) -> List[str]:
        """Enabled framework names in step order"""
        return self.ENABLED_FRAMEWORKS.split(",")

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to REDIS_URL if not set"""
        return self.CELERY_BROKER_URL or self.REDIS_URL

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Allow extra env vars in .env file


# Global settings instance
settings = Settings()

