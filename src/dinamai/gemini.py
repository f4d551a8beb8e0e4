"""
Gemini text generation over the REST API, with Google Search grounding.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import requests

from dinamai.errors import UpstreamCallFailed
from dinamai.logger import get_logger
from dinamai.retry import RetryPolicy, call_with_retry, is_retryable_status

logger = get_logger("gemini")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


@dataclass(frozen=True)
class Source:
    uri: str
    title: str


@dataclass(frozen=True)
class Generation:
    text: str
    sources: List[Source] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "sources": [{"uri": s.uri, "title": s.title} for s in self.sources],
        }


def extract_sources(candidate: dict) -> List[Source]:
    """
    Collect web citations from a candidate's grounding metadata.

    Older responses list `groundingAttributions`, newer ones `groundingChunks`;
    both wrap a `web` object. Entries without both uri and title are dropped.
    """
    metadata = candidate.get("groundingMetadata") or {}
    entries = (metadata.get("groundingAttributions") or []) + (metadata.get("groundingChunks") or [])

    sources: List[Source] = []
    seen = set()
    for entry in entries:
        web = entry.get("web") or {}
        uri, title = web.get("uri"), web.get("title")
        if not uri or not title or uri in seen:
            continue
        seen.add(uri)
        sources.append(Source(uri=uri, title=title))
    return sources


def _error_message(resp: requests.Response) -> str:
    try:
        data = resp.json()
        message = data.get("error", {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return message or resp.text[:500] or f"HTTP {resp.status_code}"


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.session = session or requests.Session()
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def url(self) -> str:
        return f"{GEMINI_API_BASE}/{self.model}:generateContent"

    def build_payload(self, prompt: str, system_instruction: Optional[str] = None, grounding: bool = True) -> dict:
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        if grounding:
            payload["tools"] = [{"google_search": {}}]
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return payload

    def generate(self, prompt: str, system_instruction: Optional[str] = None, grounding: bool = True) -> Generation:
        payload = self.build_payload(prompt, system_instruction, grounding)
        result = call_with_retry(lambda: self._post(payload), self.retry_policy)

        candidates = result.get("candidates") or []
        candidate = candidates[0] if candidates else {}
        parts = (candidate.get("content") or {}).get("parts") or []
        text = parts[0].get("text") if parts else None

        if not text:
            logger.error(
                "gemini.empty_response",
                extra={"finish_reason": candidate.get("finishReason"), "model": self.model},
            )
            raise UpstreamCallFailed("Gemini API returned no usable content.", status_code=502)

        return Generation(text=text, sources=extract_sources(candidate))

    def _post(self, payload: dict) -> dict:
        try:
            resp = self.session.post(
                self.url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning("gemini.timeout", extra={"timeout": self.timeout})
            raise UpstreamCallFailed("Gemini API call timed out.", status_code=504, retryable=True) from e
        except requests.RequestException as e:
            logger.warning("gemini.connection_error", extra={"error": str(e)})
            raise UpstreamCallFailed("Could not reach Gemini API.", status_code=502, retryable=True) from e

        if not resp.ok:
            details = _error_message(resp)
            logger.warning(
                "gemini.api_error",
                extra={"status_code": resp.status_code, "details": details},
            )
            raise UpstreamCallFailed(
                "Gemini API call failed.",
                status_code=resp.status_code,
                retryable=is_retryable_status(resp.status_code),
                details=details,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamCallFailed("Gemini API returned invalid JSON.", status_code=502) from e
