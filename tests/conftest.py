import hashlib
import hmac
import json
import os
import sys
import time

import boto3
import pytest

# Lambda code lives under src/ and imports its modules top-level.
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from dinamai.errors import AuthenticationFailed, PersistenceFailed  # noqa: E402
from dinamai.quota_store import QuotaRecord  # noqa: E402

EVENTS_DIR = os.path.join(os.path.dirname(__file__), "events")


class InMemoryQuotaStore:
    """Quota store with the same atomic semantics as the DynamoDB one."""

    def __init__(self, balances=None):
        self.balances = dict(balances or {})
        self.fail_reads = False
        self.fail_writes = False
        self.reads = 0
        self.writes = 0

    def get(self, user_id):
        self.reads += 1
        if self.fail_reads:
            raise PersistenceFailed("Could not access quota in database.")
        if user_id not in self.balances:
            return None
        return QuotaRecord(user_id=user_id, remaining_units=self.balances[user_id])

    def try_decrement(self, user_id, units=1):
        self.writes += 1
        if self.fail_writes:
            raise PersistenceFailed("Could not access quota in database.")
        current = self.balances.get(user_id)
        if current is None or current < units:
            return None
        self.balances[user_id] = current - units
        return self.balances[user_id]

    def add_units(self, user_id, units):
        self.writes += 1
        if self.fail_writes:
            raise PersistenceFailed("Could not access quota in database.")
        self.balances[user_id] = self.balances.get(user_id, 0) + units
        return self.balances[user_id]


class InMemoryGuard:
    def __init__(self):
        self.keys = set()
        self.released = []

    def claim(self, key):
        if key in self.keys:
            return False
        self.keys.add(key)
        return True

    def release(self, key):
        self.keys.discard(key)
        self.released.append(key)


class StubVerifier:
    def __init__(self, tokens=None):
        self.tokens = tokens or {"good-token": "user-1"}
        self.calls = []

    def verify(self, token):
        self.calls.append(token)
        if token not in self.tokens:
            raise AuthenticationFailed("Invalid or expired session. Please log in again.")
        return self.tokens[token]


def load_event(name):
    with open(os.path.join(EVENTS_DIR, name), "r", encoding="utf-8") as f:
        return json.load(f)


def api_event(body=None, method="POST", headers=None):
    """Minimal API Gateway HTTP API (v2) proxy event."""
    event = load_event("api_post.json")
    event["requestContext"]["http"]["method"] = method
    event["headers"].update(headers or {})
    event["body"] = body if isinstance(body, str) or body is None else json.dumps(body)
    return event


@pytest.fixture
def store():
    return InMemoryQuotaStore()


@pytest.fixture
def guard():
    return InMemoryGuard()


@pytest.fixture
def dynamodb():
    return boto3.client(
        "dynamodb",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Stripe v1 signature header for `payload`."""
    timestamp = timestamp or int(time.time())
    mac = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={mac}"
