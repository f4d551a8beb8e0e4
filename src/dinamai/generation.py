"""
Request flow shared by the quota-metered generation handlers:
validate → verify session → metered Gemini call → JSON response.
"""

from dataclasses import dataclass
from typing import Optional

from dinamai.clients import build_gemini_client, build_identity_verifier, build_orchestrator
from dinamai.config import load_settings
from dinamai.errors import DinamaiError, ValidationFailed
from dinamai.gemini import GeminiClient
from dinamai.http import error_response, json_response, parse_json_body, require_post
from dinamai.identity import SupabaseIdentityVerifier
from dinamai.orchestrator import MeteredCallOrchestrator
from dinamai.secrets import get_app_secrets

REQUIRED_ENV = ("APP_SECRET_NAME", "QUOTA_TABLE", "SUPABASE_URL")


@dataclass(frozen=True)
class GenerationDeps:
    verifier: SupabaseIdentityVerifier
    orchestrator: MeteredCallOrchestrator
    gemini: GeminiClient


def build_generation_deps() -> GenerationDeps:
    settings = load_settings(required=REQUIRED_ENV)
    secrets = get_app_secrets(settings)
    return GenerationDeps(
        verifier=build_identity_verifier(settings, secrets),
        orchestrator=build_orchestrator(settings),
        gemini=build_gemini_client(settings, secrets),
    )


def _read_request(event: dict):
    require_post(event)
    payload = parse_json_body(event)

    prompt = payload.get("prompt")
    token = payload.get("supabaseToken")
    system_instruction = payload.get("systemInstruction")

    if not prompt or not token:
        raise ValidationFailed("Missing prompt or authentication token.")
    if not isinstance(prompt, str) or not isinstance(token, str):
        raise ValidationFailed("prompt and supabaseToken must be strings.")
    if system_instruction is not None and not isinstance(system_instruction, str):
        raise ValidationFailed("systemInstruction must be a string.")

    return prompt, token, system_instruction


def handle_generation(event: dict, deps: GenerationDeps, logger, default_system_instruction: Optional[str] = None):
    name = logger.name
    try:
        prompt, token, system_instruction = _read_request(event)
        system_instruction = system_instruction or default_system_instruction

        user_id = deps.verifier.verify(token)
        logger.info("%s.authenticated" % name, extra={"user_id": user_id, "prompt_chars": len(prompt)})

        result = deps.orchestrator.execute(
            user_id,
            lambda: deps.gemini.generate(prompt, system_instruction=system_instruction),
        )
    except DinamaiError as e:
        logger.warning(
            "%s.request_failed" % name,
            extra={"code": e.code, "status_code": e.status_code, "remaining": e.remaining},
        )
        return error_response(e)
    except Exception:
        logger.exception("%s.fatal_error" % name)
        return json_response(
            500,
            {"error": "Internal server error during processing.", "code": "internal_error"},
        )

    body = result.output.to_dict()
    body["remaining"] = result.remaining
    logger.info(
        "%s.completed" % name,
        extra={"user_id": user_id, "remaining": result.remaining, "sources": len(body["sources"])},
    )
    return json_response(200, body)
