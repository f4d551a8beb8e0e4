"""
Dinamai API Shared Modules
==========================

Helpers shared by the Dinamai serverless handlers. It includes:

- logger.py          → structured JSON logging
- config.py          → environment-based settings
- secrets.py         → AWS Secrets Manager integration
- errors.py          → error taxonomy and HTTP mapping
- http.py            → API Gateway request/response helpers
- retry.py           → retry policy for upstream calls
- quota_store.py     → DynamoDB-backed user quota records
- idempotency.py     → DynamoDB-based duplicate-event guard
- orchestrator.py    → quota-metered execution of billable calls
- credits.py         → credit grants after confirmed payments
- identity.py        → Supabase session token verification
- gemini.py          → Gemini text generation client
- payments.py        → Stripe checkout and webhook verification
- clients.py         → builds the above from configuration
- generation.py      → shared request flow of the chat handlers

All objects are constructed explicitly by the Lambda entry points and passed
into the handlers, so tests can swap any of them for a fake.
"""

__version__ = "1.0.0"
__author__ = "Dinamai Engineering"
__license__ = "MIT"

__all__ = ["__version__", "__author__"]
