from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenAI (required for live research)
    openai_api_key: str = ""
    openai_base_url: str = ""  # optional proxy / gateway

    # Primary: tool-augmented research model (Responses API)
    primary_model: str = "o4-mini-deep-research-2025-06-26"
    primary_timeout_seconds: float = 60.0
    primary_enable_code_interpreter: bool = True

    # Fallback: plain chat completion
    fallback_model: str = "gpt-4o"
    fallback_timeout_seconds: float = 60.0
    fallback_max_tokens: int = 2000
    fallback_temperature: float = 0.7
    # When False, only timeouts and model-unavailable errors trigger fallback.
    fallback_on_unexpected_error: bool = True

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_file_enabled: bool = True
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
