"""Configuration settings using Pydantic."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClassifierSettings(BaseSettings):
    """OpenAI-compatible classifier configuration."""
    model_config = SettingsConfigDict(env_prefix="OPENAI_")

    api_key: str = ""
    model: str = "gpt-3.5-turbo"
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.1
    max_tokens: int = 30
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "YOUR_API_KEY"


class ServerSettings(BaseSettings):
    """WebSocket server configuration."""
    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 8765
    health_port: int = 8080


class TimingSettings(BaseSettings):
    """Simulated delays, in seconds."""
    model_config = SettingsConfigDict(env_prefix="TIMING_")

    message_delay: float = 0.5
    ring_delay: float = 1.5
    time_passing_seconds: float = 3.0
    delay_scale: float = 1.0  # 0 plays every transition instantly


class LeadSettings(BaseSettings):
    """Sample lead data interpolated into the scripts."""
    model_config = SettingsConfigDict(env_prefix="LEAD_")

    first_name: str = "John"
    visit_address: str = "123 Main Street, Anytown, ST 12345"
    visit_days_ahead: int = 1


class GateSettings(BaseSettings):
    """Shared passphrase gate. Empty disables it."""
    model_config = SettingsConfigDict(env_prefix="GATE_")

    passphrase: str = "2waySMS"
    max_attempts: int = 3


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    timing: TimingSettings = Field(default_factory=TimingSettings)
    lead: LeadSettings = Field(default_factory=LeadSettings)
    gate: GateSettings = Field(default_factory=GateSettings)
