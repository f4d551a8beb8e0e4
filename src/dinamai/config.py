import os
from dataclasses import dataclass
from typing import Iterable, Optional

from dinamai.errors import ConfigurationError
from dinamai.logger import get_logger

logger = get_logger("config")

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-preview-05-20"


@dataclass(frozen=True)
class Settings:
    """Environment-derived configuration shared by every handler."""

    region: str
    app_secret_name: Optional[str]
    quota_table: Optional[str]
    idempotency_table: Optional[str]
    supabase_url: Optional[str]
    stripe_price_id: Optional[str]
    gemini_model: str = DEFAULT_GEMINI_MODEL
    credits_per_purchase: int = 20
    upstream_timeout_seconds: float = 30.0
    retry_max_attempts: int = 5
    retry_base_delay_seconds: float = 1.0
    retry_deadline_seconds: float = 25.0


_ENV_FIELDS = {
    "APP_SECRET_NAME": "app_secret_name",
    "QUOTA_TABLE": "quota_table",
    "IDEMPOTENCY_TABLE": "idempotency_table",
    "SUPABASE_URL": "supabase_url",
    "STRIPE_PRICE_ID": "stripe_price_id",
}


def _parse(name: str, default: str, cast, problems: list, minimum=None):
    raw = os.getenv(name, default)
    try:
        value = cast(raw)
    except ValueError:
        problems.append(f"{name}='{raw}' is not a valid {cast.__name__}")
        return cast(default)
    if minimum is not None and value < minimum:
        problems.append(f"{name}={raw} must be >= {minimum}")
    return value


def load_settings(required: Iterable[str] = ()) -> Settings:
    """
    Load settings from environment variables.

    `required` lists the variable names (e.g. "QUOTA_TABLE") the calling
    handler cannot work without. Raises ConfigurationError naming every
    missing or invalid variable at once.
    """
    problems = []

    missing = [name for name in required if not os.getenv(name)]
    if missing:
        problems.append(f"Missing required environment variables: {', '.join(missing)}")

    credits = _parse("CREDITS_PER_PURCHASE", "20", int, problems, minimum=1)
    timeout = _parse("UPSTREAM_TIMEOUT_SECONDS", "30", float, problems, minimum=1)
    attempts = _parse("RETRY_MAX_ATTEMPTS", "5", int, problems, minimum=1)
    base_delay = _parse("RETRY_BASE_DELAY_SECONDS", "1.0", float, problems, minimum=0)
    deadline = _parse("RETRY_DEADLINE_SECONDS", "25", float, problems, minimum=1)

    if problems:
        msg = "; ".join(problems)
        logger.error("config.invalid", extra={"problems": problems})
        raise ConfigurationError(msg)

    values = {field: os.getenv(env) or None for env, field in _ENV_FIELDS.items()}
    supabase_url = values.pop("supabase_url")

    return Settings(
        region=os.getenv("AWS_REGION", "us-east-1"),
        supabase_url=supabase_url.rstrip("/") if supabase_url else None,
        gemini_model=os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        credits_per_purchase=credits,
        upstream_timeout_seconds=timeout,
        retry_max_attempts=attempts,
        retry_base_delay_seconds=base_delay,
        retry_deadline_seconds=deadline,
        **values,
    )
