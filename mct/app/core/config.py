from typing import Optional

from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised when a component starts without the settings it needs."""


class Settings(BaseSettings):
    PROJECT_NAME: str = "Micro Concept Tracker"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # ArangoDB
    ARANGO_HOST: str = "http://localhost:8529"
    ARANGO_USERNAME: str = "root"
    ARANGO_PASSWORD: str = "test"
    ARANGO_DB_NAME: str = "micro_concept_tracker"

    # Gateway / identity
    PUBLIC_API_KEY: Optional[str] = None
    JWT_SECRET_KEY: Optional[str] = None
    TOKEN_TTL_MINUTES: int = 60 * 24 * 7
    SIGNUP_REDIRECT_URL: Optional[str] = None

    # LLM
    CHAT_API_KEY: Optional[str] = None
    CHAT_BASE_URL: str = "https://api.groq.com/openai/v1"
    CHAT_MODEL: str = "llama-3.1-8b-instant"
    CHAT_TEMPERATURE: float = 0.7

    class Config:
        env_file = ".env"
        extra = "ignore"

    def require(self, component: str, *names: str) -> None:
        """
        Fails fast when any of `names` is unset or blank.
        The error names the component and every missing variable.
        """
        missing = [name for name in names if not str(getattr(self, name, "") or "").strip()]
        if missing:
            raise ConfigurationError(
                f"{component} cannot start: missing required setting(s) {', '.join(missing)}. "
                "Set them in the environment or in .env."
            )


settings = Settings()
