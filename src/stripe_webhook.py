from dataclasses import dataclass
from functools import lru_cache

from dinamai.clients import build_credit_handler, build_stripe_gateway
from dinamai.config import load_settings
from dinamai.credits import CreditGrantHandler
from dinamai.errors import DinamaiError
from dinamai.http import dispatch, error_response, get_header, json_response, raw_body, require_post
from dinamai.logger import get_logger
from dinamai.payments import CHECKOUT_COMPLETED, StripeGateway
from dinamai.secrets import get_app_secrets

logger = get_logger("webhook")

# Payment states in which a completed checkout has actually been paid for.
SETTLED_PAYMENT_STATUSES = ("paid", "no_payment_required")


@dataclass(frozen=True)
class WebhookDeps:
    gateway: StripeGateway
    credits: CreditGrantHandler
    credits_per_purchase: int = 20


@lru_cache(maxsize=1)
def _dependencies() -> WebhookDeps:
    settings = load_settings(required=("APP_SECRET_NAME", "QUOTA_TABLE"))
    secrets = get_app_secrets(settings)
    return WebhookDeps(
        gateway=build_stripe_gateway(settings, secrets, verify_webhooks=True),
        credits=build_credit_handler(settings),
        credits_per_purchase=settings.credits_per_purchase,
    )


def _handle_checkout_completed(stripe_event: dict, deps: WebhookDeps) -> dict:
    session = (stripe_event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id") or session.get("client_reference_id")

    if not user_id:
        logger.error("webhook.user_missing", extra={"event_id": stripe_event.get("id")})
        return json_response(400, {"received": True, "message": "User ID missing in metadata."})

    payment_status = session.get("payment_status")
    if payment_status and payment_status not in SETTLED_PAYMENT_STATUSES:
        logger.info(
            "webhook.payment_not_settled",
            extra={"user_id": user_id, "payment_status": payment_status},
        )
        return json_response(200, {"received": True})

    result = deps.credits.grant(user_id, deps.credits_per_purchase, event_id=stripe_event.get("id"))
    if result.duplicate:
        return json_response(200, {"received": True, "duplicate": True})

    return json_response(200, {"received": True, "granted": result.units, "remaining": result.remaining})


def handle(event: dict, deps: WebhookDeps) -> dict:
    try:
        require_post(event)
        # Signature is checked over the body bytes exactly as Stripe sent them.
        stripe_event = deps.gateway.verify_event(raw_body(event), get_header(event, "stripe-signature"))

        event_type = stripe_event.get("type")
        logger.info(
            "webhook.received",
            extra={"event_id": stripe_event.get("id"), "type": event_type},
        )

        if event_type == CHECKOUT_COMPLETED:
            return _handle_checkout_completed(stripe_event, deps)
    except DinamaiError as e:
        logger.warning(
            "webhook.request_failed",
            extra={"code": e.code, "status_code": e.status_code},
        )
        return error_response(e)
    except Exception:
        logger.exception("webhook.fatal_error")
        return json_response(500, {"received": True, "error": "Internal error.", "code": "internal_error"})

    # Every other event type is acknowledged without side effects.
    return json_response(200, {"received": True})


def lambda_handler(event, context):
    return dispatch(logger, event, context, _dependencies, handle)
