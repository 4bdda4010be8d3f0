"""LLM client setup and inference — wraps the openai SDK.

Supports any OpenAI-compatible backend: OpenRouter (cloud, default) or
LM Studio (local).  ``create_client`` resolves the API key and injects the
extra headers OpenRouter expects.

``LMStudioClient.complete(prompt, attachments=...)`` returns an object with a
``.text`` attribute.  Attachments are sent as base64 ``file`` content parts,
which is how PDFs reach models that read them natively.
"""

import base64
import logging
import os
import re
import time
from dataclasses import dataclass

import openai as _openai

from pdfdigest.models import Config, LLMError

logger = logging.getLogger(__name__)

_MAX_TRANSIENT_RETRIES = 2


# ---------------------------------------------------------------------------
# Client wrapper
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Attachment:
    """A binary file sent alongside the prompt."""

    filename: str
    mime_type: str
    data: bytes

    def to_content_part(self) -> dict:
        encoded = base64.b64encode(self.data).decode("ascii")
        return {
            "type": "file",
            "file": {
                "filename": self.filename,
                "file_data": f"data:{self.mime_type};base64,{encoded}",
            },
        }


class _CompletionResponse:
    """Thin wrapper presenting an openai chat response as ``response.text``."""

    __slots__ = ("text",)

    def __init__(self, text: str | None) -> None:
        self.text = text


class LMStudioClient:
    """OpenAI-compatible client for OpenRouter or LM Studio.

    Attributes:
        model: The model identifier passed to every completion request.
    """

    def __init__(
        self,
        model: str,
        base_url: str,
        api_key: str = "lm-studio",
        extra_headers: dict | None = None,
        timeout_s: int = 120,
        max_output_tokens: int | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_output_tokens = max_output_tokens
        self._client = _openai.OpenAI(
            base_url=base_url,
            api_key=api_key,
            default_headers=extra_headers or {},
        )

    def complete(
        self, prompt: str, attachments: list[Attachment] | None = None
    ) -> _CompletionResponse:
        """Send a chat completion request and return the model's reply."""
        if attachments:
            content: str | list[dict] = [a.to_content_part() for a in attachments]
            content.append({"type": "text", "text": prompt})
        else:
            content = prompt
        kwargs: dict = dict(
            model=self.model,
            messages=[{"role": "user", "content": content}],
            timeout=self.timeout_s,
        )
        if self.max_output_tokens is not None:
            kwargs["max_tokens"] = self.max_output_tokens
        response = self._client.chat.completions.create(**kwargs)
        return _CompletionResponse(text=response.choices[0].message.content)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def create_client(config: Config) -> LMStudioClient:
    """Create a client from configuration, resolving API key and headers.

    API key resolution order:
        1. ``config.api_key`` (explicit)
        2. ``LLM_API_KEY`` environment variable
        3. ``"lm-studio"`` fallback (LM Studio ignores the value)

    OpenRouter headers are injected automatically when ``config.base_url``
    contains ``"openrouter.ai"``.
    """
    api_key = config.api_key or os.environ.get("LLM_API_KEY") or "lm-studio"

    extra_headers: dict = {}
    if "openrouter.ai" in config.base_url:
        extra_headers = {
            "HTTP-Referer": "https://github.com/pdfdigest",
            "X-Title": "pdfdigest",
        }

    return LMStudioClient(
        model=config.model,
        base_url=config.base_url,
        api_key=api_key,
        extra_headers=extra_headers,
        timeout_s=config.timeout_s,
        max_output_tokens=config.max_output_tokens,
    )


def call_llm(
    client: LMStudioClient, prompt: str, attachments: list[Attachment] | None = None
) -> str:
    """Send a prompt (and optional attachments) and return the reply text.

    An empty reply is returned as ``""``; the caller decides what it means.

    Raises:
        LLMError: if the call still fails after transient retries.
    """
    logger.info("Calling LLM  model=%s  backend=%s", client.model, client.base_url)
    t0 = time.monotonic()
    text = _complete_with_retries(client, prompt, attachments)
    elapsed = time.monotonic() - t0
    logger.info("Response received (%.1fs, %s chars)", elapsed, f"{len(text):,}")
    return text


def _complete_with_retries(
    client: LMStudioClient, prompt: str, attachments: list[Attachment] | None
) -> str:
    """Run one completion with retry/backoff on transient 429/5xx errors."""
    attempts = _MAX_TRANSIENT_RETRIES + 1
    for attempt in range(1, attempts + 1):
        try:
            response = client.complete(prompt, attachments=attachments)
            return (response.text or "").strip()
        except Exception as exc:
            if attempt >= attempts or not _is_retryable_status_error(exc):
                raise LLMError(_describe_error(exc)) from exc

            delay_s = _retry_delay_seconds(attempt)
            logger.warning(
                "Transient LLM error on attempt %d/%d (%s); retrying in %.1fs",
                attempt,
                attempts,
                exc,
                delay_s,
            )
            time.sleep(delay_s)

    raise LLMError("LLM call failed after retries")


def _describe_error(exc: Exception) -> str:
    """Prefer the API's own error message over the SDK's decorated string."""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error")
        message = body.get("message") or (nested.get("message") if isinstance(nested, dict) else None)
        if isinstance(message, str) and message.strip():
            return message.strip()
    return str(exc) or exc.__class__.__name__


def _retry_delay_seconds(attempt: int) -> float:
    """Exponential backoff delay: 1.0s, 2.0s, ..."""
    return float(2 ** (attempt - 1))


def _is_retryable_status_error(exc: Exception) -> bool:
    """Return True for transient API errors that should be retried."""
    status_code = _extract_status_code(exc)
    if status_code == 429:
        return True
    if status_code is not None and 500 <= status_code <= 599:
        return True
    return False


def _extract_status_code(exc: Exception) -> int | None:
    """Extract HTTP status code from common exception shapes or message text."""
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value

    code_attr = getattr(exc, "code", None)
    if isinstance(code_attr, int) and 100 <= code_attr <= 599:
        return code_attr

    message = str(exc)
    patterns = [
        r"Error code:\s*(\d{3})",
        r"status(?:\s*code)?\s*[:=]\s*(\d{3})",
    ]
    for pattern in patterns:
        match = re.search(pattern, message, flags=re.IGNORECASE)
        if match:
            return int(match.group(1))

    return None
