from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

AI_MAX_INPUT_CHARS_MIN = 200
AI_MAX_INPUT_CHARS_MAX = 5000


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    database_url: str = "sqlite:///./inbox_lifecycle.db"

    # State machine thresholds (copied into each SignalBundle by the extractor)
    sla_hours: float = 24  # Inbound reply SLA
    due_soon_days: float = 3  # Window in which a customer-intent due date counts as due
    inactive_timeout_days: float = 30  # Generic inbound silence before LOST
    lost_after_price_rejection_days: float = 14
    lost_after_off_platform_no_contact_days: float = 21
    lost_after_price_days: float = 60
    stale_outbound_business_days: int = 3  # Unanswered outbound becomes "Follow up now"

    # Follow-up episodes
    followup_idle_seconds: int = 24 * 60 * 60  # Idle gap that makes an outbound a follow-up
    followup_revival_window_seconds: int = 24 * 60 * 60  # Reply window counted as "revived"
    followup_batch_size: int = 100  # Rows per commit when persisting events

    # Ambiguity classifier
    classifier_ai_mode: str = "off"  # off | runtime | mock
    classifier_ai_model: str = "@cf/meta/llama-3-8b-instruct"
    classifier_ai_prompt_version: str = "v1"
    classifier_ai_timeout_ms: int = 8000
    classifier_ai_max_output_tokens: int = 128
    classifier_ai_max_input_chars: int = 1000
    classifier_ai_daily_budget_calls: int = 25
    classifier_ai_max_calls_per_conversation_per_day: int = 1

    @field_validator("classifier_ai_timeout_ms")
    @classmethod
    def _min_timeout(cls, value: int) -> int:
        return max(1000, value)

    @field_validator("classifier_ai_max_output_tokens")
    @classmethod
    def _min_output_tokens(cls, value: int) -> int:
        return max(32, value)

    @field_validator("classifier_ai_max_input_chars")
    @classmethod
    def _clamp_input_chars(cls, value: int) -> int:
        return min(AI_MAX_INPUT_CHARS_MAX, max(AI_MAX_INPUT_CHARS_MIN, value))

    @field_validator(
        "classifier_ai_daily_budget_calls",
        "classifier_ai_max_calls_per_conversation_per_day",
    )
    @classmethod
    def _non_negative_budget(cls, value: int) -> int:
        return max(0, value)


# Settings will load from environment variables or .env file
settings = Settings()
