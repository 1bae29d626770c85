from typing import Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from mct.app.core.config import ConfigurationError

ENV_PREFIX = "MCT_"


class DashboardSettings(BaseSettings):
    # Gateway
    GATEWAY_URL: str
    GATEWAY_API_KEY: str
    API_PREFIX: str = "/api/v1"
    REQUEST_TIMEOUT: float = 10.0
    SIGNUP_REDIRECT_URL: Optional[str] = None

    # Concept store sync; empirically tuned, not correctness-critical
    CHANGE_RECONCILE_DELAY: float = 1.0
    MUTATION_RECONCILE_DELAY: float = 0.5

    # Assistant
    CHAT_CONTEXT_LIMIT: int = 10

    class Config:
        env_prefix = ENV_PREFIX
        env_file = ".env"
        extra = "ignore"


def load_dashboard_settings(**overrides) -> DashboardSettings:
    """
    Reads MCT_* settings, failing fast with the names of anything missing
    instead of pydantic's field-level report.
    """
    try:
        loaded = DashboardSettings(**overrides)
    except ValidationError as exc:
        missing = [
            f"{ENV_PREFIX}{err['loc'][0]}" for err in exc.errors() if err.get("type") == "missing"
        ]
        if missing:
            raise ConfigurationError(
                f"Dashboard cannot start: missing required setting(s) {', '.join(missing)}."
            ) from exc
        raise ConfigurationError(f"Dashboard settings are invalid: {exc}") from exc

    for name in ("GATEWAY_URL", "GATEWAY_API_KEY"):
        if not getattr(loaded, name).strip():
            raise ConfigurationError(f"Dashboard cannot start: {ENV_PREFIX}{name} is empty.")
    return loaded
