import json
import logging
import re
from typing import Any, Dict, Optional

import httpx

from snapshop.core.capture import CapturedImage
from snapshop.core.config import Credential, settings
from snapshop.schemas.identify import (
    FailureReason,
    IdentificationFailure,
    IdentificationOutcome,
    IdentificationSuccess,
)

logger = logging.getLogger(__name__)

# Service endpoint for Gemini API (v1beta)
API_BASE = "https://generativelanguage.googleapis.com/v1beta"

PROMPT = (
    "Identify the main object in this image (e.g., fashion, electronics, furniture, plant, etc.).\n"
    "Return a raw JSON object (no markdown) with these exact keys:\n"
    '- "name" (specific model name, e.g., "Air Jordan 1" or "Sony WH-1000XM5" or "Monstera Deliciosa"),\n'
    '- "brand" (manufacturer or "Generic" if nature/unbranded),\n'
    '- "price" (estimated market price, e.g., "$180"),\n'
    '- "confidence" (percentage string, e.g., "95%").\n'
    "Try to be as specific as possible."
)

RESULT_KEYS = ("name", "brand", "price", "confidence")

# Gemini reports a bad key as 400 INVALID_ARGUMENT with one of these in the body
INVALID_KEY_MARKERS = ("API key not valid", "API_KEY_INVALID")

NO_TEXT_MESSAGE = "AI returned no text"
INVALID_JSON_MESSAGE = "AI response was not valid JSON"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def _redact_key(s: str) -> str:
    """
    Redact 'key=...' in URLs or text so we never leak API keys in logs/responses.
    """
    if not s:
        return s
    # Replace key=XXXXX (until & or whitespace)
    return re.sub(r"(key=)([^&\s]+)", r"\1REDACTED", s)


def strip_code_fences(text: str) -> str:
    """
    Gemini sometimes wraps JSON in ```json ... ``` even in JSON mode.
    Drop every fence marker and trim what is left.
    """
    return _FENCE_RE.sub("", text or "").strip()


def build_payload(image: CapturedImage) -> Dict[str, Any]:
    return {
        "contents": [
            {
                "parts": [
                    {"text": PROMPT},
                    {
                        "inlineData": {
                            "mimeType": "image/jpeg",
                            "data": image.b64(),
                        }
                    },
                ],
            }
        ],
        "generationConfig": {"responseMimeType": "application/json"},
    }


def _failure(reason: FailureReason, detail: Optional[str] = None) -> IdentificationFailure:
    return IdentificationFailure(reason=reason, detail=detail)


def _extract_text(data: Any) -> Optional[str]:
    """candidates[0].content.parts[0].text, or None if any step is missing."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text:
        return None
    return text


def parse_identification(text: str) -> IdentificationOutcome:
    """
    Turn the model's text answer into an outcome.
    Values are copied as-is; numbers (e.g. a bare 95) are rendered with str().
    """
    clean = strip_code_fences(text)
    try:
        obj = json.loads(clean)
    except ValueError:
        logger.warning("gemini: failed to parse JSON: %s", clean[:500])
        return _failure(FailureReason.MALFORMED_RESPONSE, INVALID_JSON_MESSAGE)

    if not isinstance(obj, dict) or any(obj.get(k) is None for k in RESULT_KEYS):
        logger.warning("gemini: JSON missing expected keys: %s", clean[:500])
        return _failure(FailureReason.MALFORMED_RESPONSE, INVALID_JSON_MESSAGE)

    fields = {k: obj[k] if isinstance(obj[k], str) else str(obj[k]) for k in RESULT_KEYS}
    return IdentificationSuccess(**fields)


class GeminiClient:
    """
    One-shot product identifier on top of Gemini generateContent.

    Never raises for expected failures: a missing/invalid key, HTTP errors,
    network errors and unusable answers all come back as IdentificationFailure.
    Exactly one request per call, no retries.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        configured = (model or settings.GEMINI_MODEL or "").strip()
        # accept both "gemini-x" and "models/gemini-x"
        self.model = configured[len("models/"):] if configured.startswith("models/") else configured
        self.timeout = timeout if timeout is not None else settings.GEMINI_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{API_BASE}/models/{self.model}:generateContent"

    async def identify(self, image: CapturedImage, credential: Optional[Credential]) -> IdentificationOutcome:
        if credential is None or not credential.value:
            logger.info("gemini: no credential, skipping request")
            return _failure(FailureReason.CREDENTIAL_MISSING)

        payload = build_payload(image)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, params={"key": credential.value}, json=payload)
        except httpx.HTTPError as e:
            detail = _redact_key(f"API Error: {type(e).__name__} {e}")
            logger.warning("gemini: request failed: %s", detail)
            return _failure(FailureReason.TRANSPORT_OR_SERVICE_ERROR, detail)

        if r.status_code >= 400:
            body = _redact_key(r.text)
            if any(marker in body for marker in INVALID_KEY_MARKERS):
                logger.warning("gemini: key rejected (status=%s, source=%s)", r.status_code, credential.source)
                return _failure(FailureReason.CREDENTIAL_INVALID)

            detail = f"API Error: {r.status_code} {body}"
            logger.warning("gemini: service error status=%s body=%s", r.status_code, body[:2000])
            return _failure(FailureReason.TRANSPORT_OR_SERVICE_ERROR, detail)

        try:
            data = r.json()
        except ValueError:
            data = None

        text = _extract_text(data)
        if text is None:
            logger.warning("gemini: unexpected response shape: %s", _redact_key(r.text)[:500])
            return _failure(FailureReason.MALFORMED_RESPONSE, NO_TEXT_MESSAGE)

        outcome = parse_identification(text)
        if isinstance(outcome, IdentificationSuccess):
            logger.info("gemini: identified name=%r brand=%r confidence=%s", outcome.name, outcome.brand, outcome.confidence)
        return outcome
