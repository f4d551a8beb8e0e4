from dinamai import __version__
from dinamai.http import json_response, request_method
from dinamai.logger import log


def lambda_handler(event, context):
    log("health.check", path=event.get("rawPath", "/healthz"), method=request_method(event) or "GET")
    return json_response(200, {"status": "ok", "version": __version__})
