from typing import Annotated, Any, Literal

from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./backend/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "PlantUML Architect"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Model provider (any OpenAI-compatible endpoint; Gemini by default)
    LLM_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    LLM_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    MODEL_DEFAULT: str = "gemini-2.5-flash-lite"
    MODEL_EDIT: str = "gemini-2.5-flash"
    LLM_TIMEOUT_SECONDS: float = 60.0
    # "json_schema" asks the provider for schema-constrained output; "prompt" only embeds the schema
    LLM_RESPONSE_FORMAT: Literal["json_schema", "prompt"] = "prompt"

    # Generation loop
    MAX_RETRIES: int = 2
    RETRY_DELAY_SECONDS: float = 1.0
    RETRY_DELAY_CAP_SECONDS: float = 3.0
    GENERATE_TEMPERATURE: float = 0.7
    EDIT_TEMPERATURE: float = 0.5
    RETRY_TEMPERATURE: float = 0.2
    QUOTE_CHECK_MODE: Literal["line", "document"] = "line"

    # Rendering service
    PLANTUML_SERVER_URL: str = "https://www.plantuml.com/plantuml"
    RENDER_TIMEOUT_SECONDS: float = 15.0
    RENDER_VALIDATION_FORMAT: Literal["svg", "png"] = "svg"

    # In-memory response caches (size 0 disables a cache)
    DIAGRAM_CACHE_SIZE: int = 50
    DIAGRAM_CACHE_TTL_SECONDS: float = 24 * 60 * 60
    RENDER_CACHE_SIZE: int = 100
    RENDER_CACHE_TTL_SECONDS: float = 5 * 60

    @computed_field  # type: ignore[prop-decorator]
    @property
    def llm_api_key(self) -> str | None:
        return self.LLM_API_KEY or self.GEMINI_API_KEY


settings = Settings()  # type: ignore
