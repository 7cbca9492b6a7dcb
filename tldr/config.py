from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: str = "INFO"

    fetch_timeout_seconds: float = 10.0
    fetch_max_redirects: int = 5
    fetch_user_agent: str = "tldr/1.0"

    cli_timeout_seconds: float = 120.0
    notion_max_depth: int = 2

    max_input_words: int = 100_000
    long_content_words: int = 10_000
    max_tokens_ceiling: int = 4096

    default_provider: str = "anthropic"
    default_model: str = "claude-sonnet-4-5-20250929"
    default_max_tokens: int = 1024


settings = Settings()
