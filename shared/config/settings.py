"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LLMProvider(str, Enum):
    """Supported LLM providers for reasoning and vision calls."""

    GATEWAY = "gateway"
    CLAUDE = "claude"
    OPENAI = "openai"


class PostgresSettings(BaseSettings):
    """PostgreSQL database configuration."""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = "localhost"
    port: int = 5432
    user: str = "labelwise"
    password: SecretStr = SecretStr("labelwise_dev_password")
    db: str = "labelwise"

    # Full URL override, e.g. sqlite+aiosqlite:///./labelwise.db
    url: str | None = None

    @property
    def async_url(self) -> str:
        """Generate async SQLAlchemy connection URL."""
        if self.url:
            return self.url
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.db}"

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured URL points at SQLite."""
        return self.async_url.startswith("sqlite")


class GatewaySettings(BaseSettings):
    """OpenAI-compatible AI gateway configuration."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    api_key: SecretStr = Field(
        default=SecretStr(""),
        alias="LOVABLE_API_KEY",
    )
    base_url: str = "https://ai.gateway.lovable.dev/v1"
    reasoning_model: str = "google/gemini-2.5-flash"
    vision_model: str = "google/gemini-2.5-pro"


class ClaudeSettings(BaseSettings):
    """Anthropic Claude API configuration."""

    model_config = SettingsConfigDict(env_prefix="CLAUDE_")

    api_key: SecretStr = Field(
        default=SecretStr(""),
        alias="ANTHROPIC_API_KEY",
    )
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096


class OpenAISettings(BaseSettings):
    """OpenAI API configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: SecretStr = SecretStr("")
    model: str = "gpt-4o-mini"
    search_context_size: str = "high"


class GroqSettings(BaseSettings):
    """Groq compound (search-enabled) model configuration."""

    model_config = SettingsConfigDict(env_prefix="GROQ_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "compound-beta"
    max_retries: int = 3
    retry_delay_seconds: float = 1.0


class PerplexitySettings(BaseSettings):
    """Perplexity search API configuration."""

    model_config = SettingsConfigDict(env_prefix="PERPLEXITY_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://api.perplexity.ai"
    model: str = "sonar-pro"
    recency_filter: str = "month"


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    model_config = SettingsConfigDict(env_prefix="LLM_")

    provider: LLMProvider = LLMProvider.GATEWAY
    temperature: float = 0.1
    timeout_seconds: int = 120

    # Provider-specific settings
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    claude: ClaudeSettings = Field(default_factory=ClaudeSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    groq: GroqSettings = Field(default_factory=GroqSettings)
    perplexity: PerplexitySettings = Field(default_factory=PerplexitySettings)


class FirecrawlSettings(BaseSettings):
    """Firecrawl scraping service configuration."""

    model_config = SettingsConfigDict(env_prefix="FIRECRAWL_")

    api_key: SecretStr = SecretStr("")
    base_url: str = "https://api.firecrawl.dev/v1"
    wait_for_ms: int = 5000
    timeout_seconds: int = 90


class StorageSettings(BaseSettings):
    """S3-compatible object storage configuration."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    endpoint: str = "localhost:9000"
    access_key: SecretStr = SecretStr("labelwise")
    secret_key: SecretStr = SecretStr("labelwise_dev_secret")
    secure: bool = False
    region: str | None = None
    uploads_bucket: str = "label-uploads"
    reports_bucket: str = "compliance-reports"


class ComplianceSettings(BaseSettings):
    """Extraction and regulatory analysis tuning."""

    model_config = SettingsConfigDict(env_prefix="COMPLIANCE_")

    low_confidence_threshold: float = 0.85
    max_source_chars: int = 50_000
    excerpt_chars: int = 200


class MonitorSettings(BaseSettings):
    """Background regulatory source scheduler."""

    model_config = SettingsConfigDict(env_prefix="MONITOR_")

    scheduler_enabled: bool = False
    poll_interval_seconds: int = 3600


class JWTSettings(BaseSettings):
    """JWT authentication configuration."""

    model_config = SettingsConfigDict(env_prefix="JWT_")

    secret_key: SecretStr = SecretStr("your-jwt-secret-key-min-32-chars-long")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "*"
    allow_credentials: bool = False

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class ServicePorts(BaseSettings):
    """Service port configuration."""

    regulatory_monitor: int = Field(default=8001, alias="REGULATORY_MONITOR_PORT")
    label_compliance: int = Field(default=8002, alias="LABEL_COMPLIANCE_PORT")


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Use the global `settings` singleton or call `get_settings()`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO

    # Project paths
    project_root: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)

    # Service ports
    ports: ServicePorts = Field(default_factory=ServicePorts)

    # Persistence
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    # External services
    llm: LLMSettings = Field(default_factory=LLMSettings)
    firecrawl: FirecrawlSettings = Field(default_factory=FirecrawlSettings)

    # Domain tuning
    compliance: ComplianceSettings = Field(default_factory=ComplianceSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)

    # Authentication
    jwt: JWTSettings = Field(default_factory=JWTSettings)

    # Security
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in test mode."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton.
    """
    return Settings()
