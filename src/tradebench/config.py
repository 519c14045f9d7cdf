"""Configuration settings for the application."""

from pydantic_settings import BaseSettings

from tradebench.scheduling.window_gate import ScheduleConfig


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8787
    DEBUG: bool = False
    DATA_DIR: str = "./data"
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    LLM_PROVIDER: str = "openai"  # Options: openai, openai-compatible, mistral, deepseek,
    #                               grok, xai, qwen, anthropic, gemini
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_BASE_URL: str | None = None
    LLM_API_KEY: str | None = None
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_TEMPERATURE: float = 0.3

    # Agent loop
    MAX_STEPS: int = 16
    MAX_NUDGES: int = 2
    TOOL_TIMEOUT_SECONDS: float = 30.0

    # Trading windows
    TIMEZONE: str = "America/New_York"
    TRADING_WINDOWS: str = "08:00,09:31,12:00,15:55"
    WINDOW_DURATION_MINUTES: int = 4

    # Tools
    BROKERAGE_FACTORY: str | None = None  # "package.module:callable"
    BENCHMARK_SYMBOL: str = "SPY"
    SAMPLE_INTERVAL_SECONDS: float = 60.0  # equity/benchmark sampling in api mode
    SEARCH_PROVIDER: str = "duckduckgo"  # Options: duckduckgo, brave, tavily
    SEARCH_API_KEY: str | None = None
    SEARCH_BASE_URL: str | None = None

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"

    def schedule_config(self) -> ScheduleConfig:
        """Build the trading-window schedule from the flat settings values."""
        return ScheduleConfig.from_csv(
            timezone=self.TIMEZONE,
            csv=self.TRADING_WINDOWS,
            duration_minutes=self.WINDOW_DURATION_MINUTES,
        )


settings = Settings()
