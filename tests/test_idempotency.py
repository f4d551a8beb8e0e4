import pytest
from botocore.exceptions import ClientError
from botocore.stub import ANY, Stubber

from dinamai.idempotency import IdempotencyGuard

TABLE = "dinamai-idempotency"


def test_first_claim_succeeds(dynamodb):
    guard = IdempotencyGuard(dynamodb, TABLE)
    with Stubber(dynamodb) as stubber:
        stubber.add_response(
            "put_item",
            {},
            {
                "TableName": TABLE,
                "Item": {"pk": {"S": "evt_1"}, "exp": {"N": ANY}},
                "ConditionExpression": "attribute_not_exists(pk)",
            },
        )
        assert guard.claim("evt_1") is True


def test_repeated_claim_is_duplicate(dynamodb):
    guard = IdempotencyGuard(dynamodb, TABLE)
    with Stubber(dynamodb) as stubber:
        stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")
        assert guard.claim("evt_1") is False


def test_other_errors_propagate(dynamodb):
    guard = IdempotencyGuard(dynamodb, TABLE)
    with Stubber(dynamodb) as stubber:
        stubber.add_client_error("put_item", service_error_code="ResourceNotFoundException")
        with pytest.raises(ClientError):
            guard.claim("evt_1")


def test_release_deletes_key(dynamodb):
    guard = IdempotencyGuard(dynamodb, TABLE)
    with Stubber(dynamodb) as stubber:
        stubber.add_response("delete_item", {}, {"TableName": TABLE, "Key": {"pk": {"S": "evt_1"}}})
        guard.release("evt_1")
        stubber.assert_no_pending_responses()


def test_disabled_guard_never_touches_dynamodb(dynamodb):
    guard = IdempotencyGuard(dynamodb, None)
    with Stubber(dynamodb):
        # Any call would fail: no responses are queued.
        assert guard.claim("evt_1") is True
        assert guard.claim("evt_1") is True
        guard.release("evt_1")
    assert guard.enabled is False
