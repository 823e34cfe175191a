"""Inference capability via LiteLLM.

Provides an opaque "prompt (+ optional binary attachment) in, text out"
service with:
- A single configured model (Gemini by default) called through litellm
- Audio attachments sent as base64 data-URI file parts
- Provider exceptions mapped onto a small InferenceError taxonomy
- Prompt injection detection for untrusted text embedded in prompts
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass
from typing import Any

import litellm
import structlog

from src.huddle.config import get_settings

logger = structlog.get_logger(__name__)


# ── Errors ───────────────────────────────────────────────────────────────────


class InferenceError(Exception):
    """Base class for inference failures."""


class InferenceTimeoutError(InferenceError):
    """The provider did not answer within the allotted time."""


class InferenceQuotaExceededError(InferenceError):
    """The provider rejected the call for quota or rate limit reasons."""


class InferenceTransportError(InferenceError):
    """Network, provider, or configuration failure."""


class MalformedResponseError(InferenceError):
    """The provider answered, but not in the structure we asked for."""


# ── Prompt Injection Detection ────────────────────────────────────────────────

_INJECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "instruction_override",
        re.compile(
            r"ignore\s+(all\s+)?previous\s+instructions|"
            r"disregard\s+(all\s+)?(your\s+)?instructions|"
            r"forget\s+(all\s+)?(your\s+)?instructions|"
            r"override\s+(all\s+)?(your\s+)?instructions",
            re.IGNORECASE,
        ),
    ),
    (
        "system_prompt_exfiltration",
        re.compile(
            r"(reveal|show|display|output|print|repeat)\s+(your\s+)?(system\s+prompt|instructions)|"
            r"repeat\s+everything\s+above",
            re.IGNORECASE,
        ),
    ),
    (
        "control_characters",
        re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]{3,}"),
    ),
]


def detect_prompt_injection(text: str) -> tuple[bool, str | None]:
    """Check text for common prompt injection patterns.

    Returns:
        Tuple of (is_injection, pattern_name).
    """
    for pattern_name, pattern in _INJECTION_PATTERNS:
        if pattern.search(text):
            logger.warning(
                "prompt_injection_detected",
                pattern=pattern_name,
                text_preview=text[:100],
            )
            return True, pattern_name
    return False, None


def sanitize_text(text: str) -> str:
    """Strip injection patterns from untrusted text before it enters a prompt."""
    if not text:
        return text
    is_injection, _ = detect_prompt_injection(text)
    if not is_injection:
        return text
    cleaned = text
    for _, pattern in _INJECTION_PATTERNS:
        cleaned = pattern.sub("[removed]", cleaned)
    return cleaned


# ── Response Helpers ─────────────────────────────────────────────────────────

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)


def parse_json_response(text: str) -> dict[str, Any]:
    """Decode a JSON object from a model answer, tolerating code fences.

    Raises:
        MalformedResponseError: If no JSON object can be decoded.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    if not cleaned.startswith("{"):
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponseError("Response did not contain a JSON object")
        cleaned = cleaned[start : end + 1]
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Response was not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedResponseError("Response JSON was not an object")
    return data


# ── Inference Service ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Attachment:
    """Binary artifact sent alongside a prompt."""

    data: bytes
    mime_type: str
    display_name: str = ""

    def to_content_part(self) -> dict[str, Any]:
        encoded = base64.b64encode(self.data).decode("ascii")
        return {
            "type": "file",
            "file": {"file_data": f"data:{self.mime_type};base64,{encoded}"},
        }


class InferenceService:
    """Generative text capability backed by litellm.acompletion.

    Args:
        model: litellm model string; defaults to settings.LLM_MODEL.
        timeout: Provider-side request timeout in seconds.
    """

    def __init__(self, model: str | None = None, timeout: float | None = None) -> None:
        settings = get_settings()
        self.model = model or settings.LLM_MODEL
        self.timeout = timeout or settings.LLM_TIMEOUT
        self._api_key = settings.GEMINI_API_KEY or settings.OPENAI_API_KEY
        if not settings.inference_configured():
            logger.warning("No inference API keys configured -- inference will be unavailable")

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def generate(
        self,
        prompt: str,
        attachment: Attachment | None = None,
        *,
        system: str | None = None,
        history: list[dict[str, str]] | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> str:
        """Submit a prompt (and optional attachment) and return the answer text.

        Args:
            prompt: The user prompt.
            attachment: Optional binary artifact (e.g. meeting audio).
            system: Optional system instruction.
            history: Prior chat turns as {"role", "content"} dicts.
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature.

        Returns:
            The response text.

        Raises:
            InferenceTimeoutError, InferenceQuotaExceededError,
            InferenceTransportError, MalformedResponseError.
        """
        if not self.available:
            raise InferenceTransportError("No inference API keys configured")

        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(history or [])
        if attachment is None:
            messages.append({"role": "user", "content": prompt})
        else:
            messages.append({
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    attachment.to_content_part(),
                ],
            })

        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                timeout=self.timeout,
                api_key=self._api_key,
            )
        except litellm.RateLimitError as exc:
            logger.warning("inference_quota_exceeded", model=self.model)
            raise InferenceQuotaExceededError(str(exc)) from exc
        except litellm.Timeout as exc:
            raise InferenceTimeoutError(str(exc)) from exc
        except Exception as exc:
            logger.warning("inference_call_failed", model=self.model, error=str(exc))
            raise InferenceTransportError(str(exc)) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise MalformedResponseError("Inference returned an empty response")

        usage = getattr(response, "usage", None)
        logger.info(
            "inference_completed",
            model=self.model,
            with_attachment=attachment is not None,
            total_tokens=getattr(usage, "total_tokens", None),
        )
        return content


# ── Singleton ─────────────────────────────────────────────────────────────────

_inference_service: InferenceService | None = None


def get_inference_service() -> InferenceService:
    """Get or create the inference service singleton."""
    global _inference_service
    if _inference_service is None:
        _inference_service = InferenceService()
    return _inference_service
