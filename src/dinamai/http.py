"""
API Gateway request/response helpers.

Handlers receive either HTTP API (v2) or REST API (v1) proxy events. During
local testing the body may already be a dict.
"""

import base64
import binascii
import json
from typing import Any, Dict, Optional

from dinamai.errors import DinamaiError, MethodNotAllowed, ValidationFailed

JSON_HEADERS = {"Content-Type": "application/json"}


def json_response(status_code: int, body: Any) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": dict(JSON_HEADERS),
        "body": json.dumps(body),
    }


def error_response(error: DinamaiError) -> Dict[str, Any]:
    return json_response(error.status_code, error.to_body())


def request_method(event: dict) -> str:
    method = event.get("requestContext", {}).get("http", {}).get("method")
    if not method:
        method = event.get("httpMethod", "")
    return method.upper()


def require_post(event: dict) -> None:
    if request_method(event) != "POST":
        raise MethodNotAllowed()


def get_header(event: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup (v2 lowercases names, v1 does not)."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def raw_body(event: dict) -> bytes:
    """
    Return the request body exactly as the client sent it.

    Signature checks must run over these bytes, never over a re-serialized
    form of the parsed JSON.
    """
    body = event.get("body")
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, dict):
        raise ValidationFailed("Request body must be sent as raw bytes, not pre-parsed JSON.")
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except binascii.Error as e:
            raise ValidationFailed("Request body is not valid base64.") from e
    return body.encode("utf-8")


def parse_json_body(event: dict) -> dict:
    body = event.get("body")
    if isinstance(body, dict):
        return body

    data = raw_body(event)
    if not data:
        return {}

    try:
        payload = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationFailed("Request body is not valid JSON.") from e

    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object.")
    return payload


def dispatch(logger, event: dict, context, build_dependencies, handle) -> Dict[str, Any]:
    """
    Lambda entry-point glue: reject non-POST requests, then build (or reuse)
    the handler's collaborators and run the handler, turning a
    misconfiguration into a 500.
    """
    logger.info(
        "%s.lambda_start" % logger.name,
        extra={"request_id": getattr(context, "aws_request_id", None)},
    )
    try:
        require_post(event)
    except MethodNotAllowed as e:
        return error_response(e)

    try:
        deps = build_dependencies()
    except DinamaiError as e:
        logger.error("%s.dependencies_error" % logger.name, extra={"error": e.message})
        return error_response(e)
    return handle(event, deps)
