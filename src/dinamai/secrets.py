import json

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from dinamai.config import Settings
from dinamai.errors import ConfigurationError
from dinamai.logger import get_logger

logger = get_logger("secrets")


def get_app_secrets(settings: Settings, client=None) -> dict:
    """
    Fetch third-party API keys from AWS Secrets Manager.

    Expects the secret value to be a JSON object, e.g.:

        {
          "gemini_api_key": "...",
          "supabase_service_role_key": "...",
          "stripe_secret_key": "sk_...",
          "stripe_webhook_secret": "whsec_..."
        }

    Individual keys are validated by the client builders that need them.
    """
    secret_name = settings.app_secret_name
    if not secret_name:
        raise ConfigurationError("Missing required environment variables: APP_SECRET_NAME")

    logger.info(
        "secrets.fetch",
        extra={"secret_name": secret_name, "region": settings.region},
    )

    if client is None:
        client = boto3.client("secretsmanager", region_name=settings.region)

    try:
        resp = client.get_secret_value(SecretId=secret_name)
    except (BotoCoreError, ClientError) as e:
        logger.error(
            "secrets.fetch_error",
            extra={"secret_name": secret_name, "error": str(e)},
        )
        raise ConfigurationError(f"Could not read secret '{secret_name}'") from e

    secret_str = resp.get("SecretString")
    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise ConfigurationError(msg)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError as e:
        logger.error(
            "secrets.invalid_json",
            extra={"secret_name": secret_name, "error": str(e)},
        )
        raise ConfigurationError(f"Secret '{secret_name}' is not valid JSON") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Secret '{secret_name}' must be a JSON object")

    return data


def require_secrets(secrets: dict, *names: str) -> list:
    """Return the requested secret values, failing on any that are empty."""
    missing = [name for name in names if not secrets.get(name)]
    if missing:
        logger.error("secrets.missing", extra={"missing": missing})
        raise ConfigurationError(f"Missing secrets: {', '.join(missing)}")
    return [secrets[name] for name in names]
