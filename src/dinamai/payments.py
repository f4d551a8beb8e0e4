import json
from typing import Union

import stripe

from dinamai.errors import SignatureInvalid, UpstreamCallFailed, ValidationFailed
from dinamai.logger import get_logger

logger = get_logger("payments")

CHECKOUT_COMPLETED = "checkout.session.completed"
CREDIT_PACKAGE = "20_MESSAGES"


class StripeGateway:
    """
    Stripe checkout creation and webhook verification.

    The API key is passed per request instead of being set on the global
    `stripe` module.
    """

    def __init__(self, api_key: str, webhook_secret: str, price_id: str, tolerance: int = 300):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.price_id = price_id
        self.tolerance = tolerance

    def create_checkout_session(self, user_id: str, origin: str) -> str:
        if not origin:
            raise ValidationFailed("Missing request origin for checkout redirect.")

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                payment_method_types=["card"],
                line_items=[{"price": self.price_id, "quantity": 1}],
                mode="payment",
                success_url=f"{origin}/?session_id={{CHECKOUT_SESSION_ID}}&success=true",
                cancel_url=f"{origin}/?canceled=true",
                client_reference_id=user_id,
                metadata={"user_id": user_id, "package": CREDIT_PACKAGE},
            )
        except stripe.StripeError as e:
            logger.error(
                "payments.checkout_error",
                extra={"user_id": user_id, "error": str(e)},
            )
            raise UpstreamCallFailed(
                "Could not create Stripe checkout session.",
                status_code=500,
                details=getattr(e, "user_message", None) or str(e),
            ) from e

        logger.info("payments.checkout_created", extra={"user_id": user_id, "session_id": session["id"]})
        return session["url"]

    def verify_event(self, raw_body: Union[bytes, str], signature: str) -> dict:
        """
        Check the Stripe-Signature header against the raw request body and
        return the parsed event.
        """
        if not signature:
            raise SignatureInvalid("Missing Stripe-Signature header.")

        try:
            payload = raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body
        except UnicodeDecodeError as e:
            logger.warning("payments.payload_not_utf8")
            raise SignatureInvalid("Webhook payload is not valid UTF-8.") from e

        try:
            stripe.WebhookSignature.verify_header(payload, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning("payments.signature_invalid", extra={"error": str(e)})
            raise SignatureInvalid(f"Webhook Error: {e}") from e

        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationFailed("Webhook payload is not valid JSON.") from e

        if not isinstance(event, dict):
            raise ValidationFailed("Webhook payload must be a JSON object.")
        return event
