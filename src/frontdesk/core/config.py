from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # OpenAI Configuration
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    inference_timeout_seconds: float = 10.0

    # LiveKit Configuration
    livekit_url: Optional[str] = None
    livekit_api_key: Optional[str] = None
    livekit_api_secret: Optional[str] = None

    # Database Configuration
    database_path: str = "frontdesk_data.db"
    seed_initial_knowledge: bool = True

    # Application Configuration
    app_name: str = "FrontDesk AI Supervisor"
    business_name: str = "FrontDesk"
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


# Global settings instance
settings = Settings()


def require_openai_key() -> str:
    """Return the OpenAI key or fail loudly when the inference provider is built"""
    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY not set in environment")
    return settings.openai_api_key


def require_livekit_credentials() -> tuple[str, str, str]:
    if not all([settings.livekit_url, settings.livekit_api_key, settings.livekit_api_secret]):
        raise ValueError("LiveKit credentials not set in environment")
    return settings.livekit_url, settings.livekit_api_key, settings.livekit_api_secret
