"""
Application configuration settings.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Self

# Characters that are easy to misread when a code is handed over on paper
# or read aloud.
CONFUSABLE_CODE_CHARACTERS = frozenset("0O1I")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "SkillGate API"
    APP_VERSION: str = "0.1.0"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # API
    API_V1_PREFIX: str = "/v1"

    # CORS
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8080",
    ]

    # Security
    # IMPORTANT: Must be set in .env file - no default for security
    JWT_SECRET_KEY: str = Field(..., description="JWT signing secret key (required)")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Sentry Error Tracking
    SENTRY_DSN: str = Field(
        default="",
        description="Sentry DSN for error tracking (leave empty to disable)",
    )
    SENTRY_TRACES_SAMPLE_RATE: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Sentry traces sample rate (0.0-1.0, 0.1 = 10% of transactions)",
    )

    # One-time codes
    ONE_TIME_CODE_LENGTH: int = Field(default=8, ge=4, le=32)
    ONE_TIME_CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    ONE_TIME_CODE_MAX_BATCH: int = Field(default=50, ge=1)
    # Attempts per code slot before the whole batch is abandoned
    ONE_TIME_CODE_MAX_ATTEMPTS: int = Field(default=100, ge=1)
    ONE_TIME_CODE_MAX_EXPIRY_HOURS: int = 168  # 7 days

    # Test time limits (seconds)
    TYPING_TIME_LIMIT_SECONDS: int = 60
    PRACTICE_TYPING_TIME_LIMIT_SECONDS: int = 30
    DIGITAL_LITERACY_SECONDS_PER_QUESTION: int = 60

    # Session working state
    MAX_KEYSTROKE_LOG: int = Field(
        default=5000,
        ge=1,
        description="Maximum keystrokes kept in a session's working state",
    )

    # Accuracy (percent) at which a typing result counts as a pass
    RESULT_PASS_ACCURACY: float = Field(default=90.0, ge=0.0, le=100.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields from .env not defined in Settings
    )

    @model_validator(mode="after")
    def validate_code_alphabet(self) -> Self:
        """Reject code alphabets that are empty, repetitive, or ambiguous."""
        alphabet = self.ONE_TIME_CODE_ALPHABET
        if len(alphabet) < 2:
            raise ValueError("ONE_TIME_CODE_ALPHABET must contain at least 2 characters")
        if len(set(alphabet)) != len(alphabet):
            raise ValueError("ONE_TIME_CODE_ALPHABET must not repeat characters")
        confusable = sorted(CONFUSABLE_CODE_CHARACTERS & set(alphabet))
        if confusable:
            raise ValueError(
                f"ONE_TIME_CODE_ALPHABET contains confusable characters: {confusable}"
            )
        return self

    @model_validator(mode="after")
    def validate_time_limits(self) -> Self:
        """Time limits must be positive."""
        limits = {
            "TYPING_TIME_LIMIT_SECONDS": self.TYPING_TIME_LIMIT_SECONDS,
            "PRACTICE_TYPING_TIME_LIMIT_SECONDS": self.PRACTICE_TYPING_TIME_LIMIT_SECONDS,
            "DIGITAL_LITERACY_SECONDS_PER_QUESTION": self.DIGITAL_LITERACY_SECONDS_PER_QUESTION,
        }
        non_positive = [name for name, value in limits.items() if value <= 0]
        if non_positive:
            raise ValueError(f"Time limits must be positive, got: {non_positive}")
        return self


# mypy doesn't understand that pydantic_settings loads required fields from env vars
settings = Settings()  # type: ignore[call-arg]
