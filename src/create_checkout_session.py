from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dinamai.clients import build_identity_verifier, build_stripe_gateway
from dinamai.config import load_settings
from dinamai.errors import ConfigurationError, DinamaiError, ValidationFailed
from dinamai.http import dispatch, error_response, get_header, json_response, parse_json_body, require_post
from dinamai.identity import SupabaseIdentityVerifier
from dinamai.logger import get_logger
from dinamai.payments import StripeGateway
from dinamai.secrets import get_app_secrets

logger = get_logger("checkout")


@dataclass(frozen=True)
class CheckoutDeps:
    gateway: StripeGateway
    verifier: Optional[SupabaseIdentityVerifier] = None


@lru_cache(maxsize=1)
def _dependencies() -> CheckoutDeps:
    settings = load_settings(required=("APP_SECRET_NAME", "STRIPE_PRICE_ID"))
    secrets = get_app_secrets(settings)

    verifier = None
    if settings.supabase_url and secrets.get("supabase_service_role_key"):
        verifier = build_identity_verifier(settings, secrets)

    return CheckoutDeps(gateway=build_stripe_gateway(settings, secrets), verifier=verifier)


def _resolve_user(payload: dict, deps: CheckoutDeps) -> str:
    """
    A session token, when present, is verified and wins over a bare userId.
    """
    token = payload.get("supabaseToken")
    user_id = payload.get("userId")

    if token:
        if deps.verifier is None:
            raise ConfigurationError("Session verification is not configured.")
        verified = deps.verifier.verify(token)
        if user_id and user_id != verified:
            logger.warning("checkout.user_mismatch", extra={"user_id": verified})
        return verified

    if not user_id or not isinstance(user_id, str):
        raise ValidationFailed("Missing user identifier for checkout.")
    return user_id


def handle(event: dict, deps: CheckoutDeps) -> dict:
    try:
        require_post(event)
        payload = parse_json_body(event)
        user_id = _resolve_user(payload, deps)

        origin = get_header(event, "origin")
        url = deps.gateway.create_checkout_session(user_id, origin)
    except DinamaiError as e:
        logger.warning(
            "checkout.request_failed",
            extra={"code": e.code, "status_code": e.status_code},
        )
        return error_response(e)
    except Exception:
        logger.exception("checkout.fatal_error")
        return json_response(500, {"error": "Could not create checkout session.", "code": "internal_error"})

    return json_response(200, {"url": url})


def lambda_handler(event, context):
    return dispatch(logger, event, context, _dependencies, handle)
