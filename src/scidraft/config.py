"""Centralized configuration management using environment variables."""

from typing import List, Optional
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Load .env file from project root
load_dotenv()


class Config(BaseSettings):
    """Configuration settings for scidraft."""

    # Hosted Postgres (pooler connection string)
    database_url: Optional[str] = None
    sd_db_pool_size: int = 5
    sd_db_max_overflow: int = 10
    sd_db_pool_recycle_seconds: int = 300
    sd_db_connect_timeout_seconds: int = 10

    # OpenAI API (optional at startup; generation endpoints report a config error)
    openai_api_key: Optional[str] = None

    # Hosted backend (Storage + Auth REST surfaces)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None

    # Signing secret for paid_session / admin-session cookies
    cookie_secret: str = "scidraft-secret"

    # M-Pesa Daraja (unprefixed legacy names are still accepted)
    mpesa_consumer_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("mpesa_consumer_key", "consumer_key")
    )
    mpesa_consumer_secret: Optional[str] = Field(
        None, validation_alias=AliasChoices("mpesa_consumer_secret", "consumer_secret")
    )
    mpesa_shortcode: Optional[str] = Field(
        None, validation_alias=AliasChoices("mpesa_shortcode", "business_short_code")
    )
    mpesa_passkey: Optional[str] = Field(
        None, validation_alias=AliasChoices("mpesa_passkey", "passkey")
    )
    mpesa_callback_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("mpesa_callback_url", "callback_url")
    )
    mpesa_environment: str = "sandbox"  # "sandbox" or "production"
    mpesa_transaction_type: str = Field(
        "CustomerPayBillOnline",
        validation_alias=AliasChoices("mpesa_transaction_type", "transaction_type"),
    )

    # Model configuration
    sd_llm_model: str = "gpt-4o-mini"
    sd_llm_temperature: float = 0.2
    sd_llm_max_tokens: int = 8192
    sd_llm_timeout_seconds: float = 60.0
    sd_prompt_file: Optional[str] = None  # Overrides the built-in draft system prompt

    # Sessions
    sd_admin_session_timeout_seconds: int = 120
    sd_paid_session_ttl_seconds: int = 1800
    sd_pending_payment_reuse_seconds: int = 120
    sd_cookie_secure: bool = True

    # Comma-separated lists
    sd_cors_origins: str = "http://localhost:3000"
    sd_admin_emails: str = ""  # Empty = any row in the admins table may log in

    # Misc
    sd_template_cache_ttl_seconds: int = 60
    sd_http_timeout_seconds: float = 30.0
    sd_log_file: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.sd_cors_origins.split(",") if o.strip()]

    @property
    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.sd_admin_emails.split(",") if e.strip()]

    def missing_mpesa_settings(self) -> List[str]:
        """Return the env var names of required M-Pesa settings that are unset."""
        required = {
            "MPESA_CONSUMER_KEY": self.mpesa_consumer_key,
            "MPESA_CONSUMER_SECRET": self.mpesa_consumer_secret,
            "MPESA_SHORTCODE": self.mpesa_shortcode,
            "MPESA_PASSKEY": self.mpesa_passkey,
            "MPESA_CALLBACK_URL": self.mpesa_callback_url,
        }
        return [name for name, value in required.items() if not value]


def get_config() -> Config:
    """Get configuration instance (re-reads the environment on each call)."""
    return Config()


# Pricing constants (USD per 1K tokens) - Updated for current OpenAI pricing
PRICING = {
    "gpt-4o-mini": {
        "input": 0.00015,
        "output": 0.0006
    },
    "gpt-4o": {
        "input": 0.0025,
        "output": 0.01
    },
    "gpt-4.1-mini": {
        "input": 0.0004,
        "output": 0.0016
    },
    "gpt-3.5-turbo": {
        "input": 0.0005,
        "output": 0.0015
    },
}


def get_model_pricing(model: str) -> dict:
    """Get pricing for a model, with fallback to gpt-4o-mini."""
    return PRICING.get(model, PRICING["gpt-4o-mini"])
