import json

import boto3
import pytest
from botocore.stub import Stubber

from dinamai.clients import build_credit_handler, build_gemini_client, build_identity_verifier, build_stripe_gateway
from dinamai.config import DEFAULT_GEMINI_MODEL, load_settings
from dinamai.errors import ConfigurationError
from dinamai.secrets import get_app_secrets, require_secrets

ENV_VARS = (
    "AWS_REGION", "APP_SECRET_NAME", "QUOTA_TABLE", "IDEMPOTENCY_TABLE", "SUPABASE_URL",
    "STRIPE_PRICE_ID", "GEMINI_MODEL", "CREDITS_PER_PURCHASE", "UPSTREAM_TIMEOUT_SECONDS",
    "RETRY_MAX_ATTEMPTS", "RETRY_BASE_DELAY_SECONDS", "RETRY_DEADLINE_SECONDS",
)

SECRETS = {
    "gemini_api_key": "gem-key",
    "supabase_service_role_key": "svc-key",
    "stripe_secret_key": "sk_test_123",
    "stripe_webhook_secret": "whsec_123",
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    monkeypatch.setenv("QUOTA_TABLE", "quotas")

    settings = load_settings(required=("QUOTA_TABLE",))

    assert settings.region == "us-east-1"
    assert settings.quota_table == "quotas"
    assert settings.idempotency_table is None
    assert settings.gemini_model == DEFAULT_GEMINI_MODEL
    assert settings.credits_per_purchase == 20
    assert settings.upstream_timeout_seconds == 30.0
    assert settings.retry_max_attempts == 5
    assert settings.retry_base_delay_seconds == 1.0
    assert settings.retry_deadline_seconds == 25.0


def test_overrides(monkeypatch):
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co/")
    monkeypatch.setenv("CREDITS_PER_PURCHASE", "50")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-2.5-pro")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "3")

    settings = load_settings()

    assert settings.region == "eu-central-1"
    assert settings.supabase_url == "https://proj.supabase.co"
    assert settings.credits_per_purchase == 50
    assert settings.gemini_model == "gemini-2.5-pro"
    assert settings.retry_max_attempts == 3


def test_missing_required_variables_are_all_reported():
    with pytest.raises(ConfigurationError) as exc:
        load_settings(required=("APP_SECRET_NAME", "QUOTA_TABLE"))

    assert "APP_SECRET_NAME" in exc.value.message
    assert "QUOTA_TABLE" in exc.value.message


@pytest.mark.parametrize("name,value", [("CREDITS_PER_PURCHASE", "twenty"), ("CREDITS_PER_PURCHASE", "0"), ("UPSTREAM_TIMEOUT_SECONDS", "soon")])
def test_invalid_numbers(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError) as exc:
        load_settings()
    assert name in exc.value.message


def _secrets_client():
    return boto3.client(
        "secretsmanager",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_get_app_secrets_reads_json(monkeypatch):
    monkeypatch.setenv("APP_SECRET_NAME", "dinamai/api")
    client = _secrets_client()

    with Stubber(client) as stubber:
        stubber.add_response(
            "get_secret_value",
            {"SecretString": json.dumps(SECRETS)},
            {"SecretId": "dinamai/api"},
        )
        assert get_app_secrets(load_settings(), client=client) == SECRETS


def test_get_app_secrets_rejects_non_json(monkeypatch):
    monkeypatch.setenv("APP_SECRET_NAME", "dinamai/api")
    client = _secrets_client()

    with Stubber(client) as stubber:
        stubber.add_response("get_secret_value", {"SecretString": "not-json"}, {"SecretId": "dinamai/api"})
        with pytest.raises(ConfigurationError):
            get_app_secrets(load_settings(), client=client)


def test_get_app_secrets_wraps_aws_errors(monkeypatch):
    monkeypatch.setenv("APP_SECRET_NAME", "dinamai/api")
    client = _secrets_client()

    with Stubber(client) as stubber:
        stubber.add_client_error("get_secret_value", service_error_code="ResourceNotFoundException")
        with pytest.raises(ConfigurationError):
            get_app_secrets(load_settings(), client=client)


def test_get_app_secrets_requires_name():
    with pytest.raises(ConfigurationError):
        get_app_secrets(load_settings())


def test_require_secrets():
    assert require_secrets(SECRETS, "gemini_api_key") == ["gem-key"]
    with pytest.raises(ConfigurationError) as exc:
        require_secrets({"gemini_api_key": ""}, "gemini_api_key", "stripe_secret_key")
    assert "gemini_api_key" in exc.value.message
    assert "stripe_secret_key" in exc.value.message


def test_builders_wire_settings(monkeypatch, dynamodb):
    monkeypatch.setenv("SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("QUOTA_TABLE", "quotas")
    monkeypatch.setenv("IDEMPOTENCY_TABLE", "events")
    monkeypatch.setenv("STRIPE_PRICE_ID", "price_1")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "2")
    settings = load_settings()

    gemini = build_gemini_client(settings, SECRETS)
    assert gemini.api_key == "gem-key"
    assert gemini.retry_policy.max_attempts == 2
    assert gemini.retry_policy.deadline == 25.0
    assert gemini.timeout == 25.0

    verifier = build_identity_verifier(settings, SECRETS)
    assert verifier.base_url == "https://proj.supabase.co"

    credits = build_credit_handler(settings, dynamodb)
    assert credits.store.table_name == "quotas"
    assert credits.guard.table_name == "events"

    gateway = build_stripe_gateway(settings, SECRETS, verify_webhooks=True)
    assert gateway.price_id == "price_1"
    assert gateway.webhook_secret == "whsec_123"


def test_webhook_gateway_requires_webhook_secret():
    settings = load_settings()
    with pytest.raises(ConfigurationError):
        build_stripe_gateway(settings, {"stripe_secret_key": "sk"}, verify_webhooks=True)
    assert build_stripe_gateway(settings, {"stripe_secret_key": "sk"}).webhook_secret is None
