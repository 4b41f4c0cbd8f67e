from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field
import secrets

class Settings(BaseSettings):
    # ----------------------------------
    # App General Info
    # ----------------------------------
    PROJECT_NAME: str = "CalmSpace"
    VERSION: str = "1.0.0"
    API_PREFIX: str = Field(default="", description="Optional prefix mounted in front of every router")
    ENVIRONMENT: str = Field(
        default="development",
        description="Current environment: development, testing, staging, or production"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Root log level (DEBUG, INFO, WARNING, ERROR)")
    CORS_ALLOW_ORIGINS: list[str] = Field(default=["*"])

    # ----------------------------------
    # Relational Database (users, conversations, messages)
    # ----------------------------------
    DATABASE_URL: str = Field(default="sqlite:///./calmspace.db")

    # ----------------------------------
    # Gemini (AI listener)
    # ----------------------------------
    GEMINI_API_KEYS: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEYS", "GEMINI_API_KEY"),
        description="Comma-separated Gemini API keys. Falls back to GEMINI_API_KEY for single-key setups.",
    )
    GEMINI_MODEL: str = Field(
        default="gemini-2.5-flash",
        description="Gemini chat model name shared by every configured key.",
    )
    LLM_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout (seconds) for a single Gemini call. A timeout rotates to the next key.",
    )
    LLM_TEMPERATURE: float = Field(default=0.7)
    LLM_MAX_OUTPUT_TOKENS: int = Field(default=1024)

    # ----------------------------------
    # Auth (JWT)
    # ----------------------------------
    JWT_SECRET_KEY: str = Field(
        default_factory=lambda: secrets.token_urlsafe(48),
        description="JWT signing secret. Set in .env for stable sessions.",
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
