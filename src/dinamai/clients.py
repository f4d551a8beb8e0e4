"""
Builds collaborator objects from settings and secrets.

Lambda entry points call these once per container and pass the results into
the handlers; nothing here is stored in module-level globals.
"""

import boto3
import requests

from dinamai.config import Settings
from dinamai.credits import CreditGrantHandler
from dinamai.gemini import GeminiClient
from dinamai.identity import SupabaseIdentityVerifier
from dinamai.idempotency import IdempotencyGuard
from dinamai.logger import get_logger
from dinamai.orchestrator import MeteredCallOrchestrator
from dinamai.payments import StripeGateway
from dinamai.quota_store import DynamoQuotaStore
from dinamai.retry import RetryPolicy
from dinamai.secrets import require_secrets

logger = get_logger("clients")


def build_quota_store(settings: Settings, dynamodb=None) -> DynamoQuotaStore:
    dynamodb = dynamodb or boto3.client("dynamodb", region_name=settings.region)
    return DynamoQuotaStore(dynamodb, settings.quota_table)


def build_orchestrator(settings: Settings, dynamodb=None) -> MeteredCallOrchestrator:
    return MeteredCallOrchestrator(build_quota_store(settings, dynamodb))


def build_credit_handler(settings: Settings, dynamodb=None) -> CreditGrantHandler:
    dynamodb = dynamodb or boto3.client("dynamodb", region_name=settings.region)
    guard = IdempotencyGuard(dynamodb, settings.idempotency_table)
    if not guard.enabled:
        logger.warning("clients.idempotency_disabled")
    return CreditGrantHandler(build_quota_store(settings, dynamodb), guard)


def build_identity_verifier(settings: Settings, secrets: dict, session=None) -> SupabaseIdentityVerifier:
    (service_role_key,) = require_secrets(secrets, "supabase_service_role_key")
    return SupabaseIdentityVerifier(
        settings.supabase_url,
        service_role_key,
        session=session or requests.Session(),
        timeout=settings.upstream_timeout_seconds,
    )


def build_gemini_client(settings: Settings, secrets: dict, session=None) -> GeminiClient:
    (api_key,) = require_secrets(secrets, "gemini_api_key")
    policy = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        deadline=settings.retry_deadline_seconds,
    )
    logger.info(
        "clients.gemini_ready",
        extra={"model": settings.gemini_model, "max_attempts": policy.max_attempts},
    )
    return GeminiClient(
        api_key,
        settings.gemini_model,
        session=session or requests.Session(),
        # A single attempt may not outlast the whole retry budget.
        timeout=min(settings.upstream_timeout_seconds, settings.retry_deadline_seconds),
        retry_policy=policy,
    )


def build_stripe_gateway(settings: Settings, secrets: dict, verify_webhooks: bool = False) -> StripeGateway:
    names = ["stripe_secret_key"]
    if verify_webhooks:
        names.append("stripe_webhook_secret")
    api_key = require_secrets(secrets, *names)[0]
    return StripeGateway(api_key, secrets.get("stripe_webhook_secret"), settings.stripe_price_id)
