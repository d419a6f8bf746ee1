"""Upstream adapter for the hosted inference API.

The adapter turns a user query into one bearer-authenticated POST against the
configured endpoint and reshapes whatever comes back into plain text.  The
request body depends on :class:`ApiVariant`; the response parser does not, it
recognises every shape the supported endpoints produce.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import httpx

from lib.config.gateway_loader import UpstreamConfig
from lib.contracts.envelope import UpstreamResult
from lib.telemetry.logger import get_logger
from lib.utils.helpers import PROMPT_ECHO_MARKER, strip_prompt_echo

log = get_logger(__name__)

FALLBACK_REPLY = "I'm sorry, Sir. I couldn't process that request."
GATEWAY_FAILURE_STATUS = 502


class ApiVariant(str, Enum):
    CHAT_COMPLETIONS = "chat_completions"
    TEXT_GENERATION = "text_generation"


class TokenNotConfigured(RuntimeError):
    """Raised when none of the configured token variables is set."""

    def __init__(self, names: Tuple[str, ...]):
        self.names = names
        super().__init__(f"{names[0]} environment variable not set")


# ---------------------------------------------------------------------------
# Response shape detection
# ---------------------------------------------------------------------------

def _chat_completion_text(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else None


def _generation_array_text(data: Any) -> Optional[str]:
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    text = data[0].get("generated_text")
    return text if isinstance(text, str) else None


def _plain_text(data: Any) -> Optional[str]:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in ("output", "generated_text"):
            if isinstance(data.get(key), str):
                return data[key]
    return None


_EXTRACTORS: Tuple[Callable[[Any], Optional[str]], ...] = (
    _chat_completion_text,
    _generation_array_text,
    _plain_text,
)


def extract_generated_text(data: Any) -> Optional[str]:
    """Return the generated text of an upstream payload, or ``None``.

    Shapes are tried in a fixed order: chat completion
    (``choices[0].message.content``), generation array
    (``[0].generated_text``), then a bare string or ``output`` field.
    """

    for extractor in _EXTRACTORS:
        text = extractor(data)
        if text is not None:
            return text
    return None


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class UpstreamAdapter:
    """Single-shot client for the configured text-generation endpoint."""

    def __init__(
        self,
        cfg: UpstreamConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_lookup: Optional[Callable[[str], Optional[str]]] = None,
    ):
        self.cfg = cfg
        self.variant = ApiVariant(cfg.variant)
        self.transport = transport
        self.token_lookup = token_lookup or os.environ.get

    @property
    def model(self) -> str:
        return self.cfg.model

    def resolve_token(self) -> str:
        for name in self.cfg.token_env:
            token = self.token_lookup(name)
            if token:
                return token
        raise TokenNotConfigured(self.cfg.token_env)

    def build_payload(self, query: str) -> Dict[str, Any]:
        if self.variant is ApiVariant.TEXT_GENERATION:
            return {
                "inputs": f"{self.cfg.system_prompt}\n\n{PROMPT_ECHO_MARKER} {query}\n",
                "parameters": {
                    "max_new_tokens": self.cfg.max_tokens,
                    "temperature": self.cfg.temperature,
                    "do_sample": True,
                    "return_full_text": False,
                },
            }
        return {
            "model": self.cfg.model,
            "messages": [
                {"role": "system", "content": self.cfg.system_prompt},
                {"role": "user", "content": query},
            ],
            "max_tokens": self.cfg.max_tokens,
            "temperature": self.cfg.temperature,
        }

    async def generate(self, query: str) -> UpstreamResult:
        """Send ``query`` upstream and return the cleaned-up reply.

        Raises :class:`TokenNotConfigured` when no token is available.  Any
        non-2xx answer, or a transport failure, is returned as a failed
        :class:`UpstreamResult` rather than raised.  Invalid JSON in a 2xx
        answer propagates as :class:`ValueError`.
        """

        token = self.resolve_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                transport=self.transport, timeout=self.cfg.timeout_seconds
            ) as client:
                resp = await client.post(
                    self.cfg.endpoint, headers=headers, json=self.build_payload(query)
                )
        except httpx.TransportError as exc:
            log.error("Upstream request to %s failed: %s", self.cfg.endpoint, exc)
            return UpstreamResult(
                status_code=GATEWAY_FAILURE_STATUS,
                details=str(exc) or exc.__class__.__name__,
            )

        if not resp.is_success:
            log.error("Upstream error %s: %s", resp.status_code, resp.text)
            return UpstreamResult(status_code=resp.status_code, details=resp.text)

        data = resp.json()
        text = extract_generated_text(data)
        if text is None:
            log.warning("Unexpected upstream response format: %r", data)
            text = FALLBACK_REPLY
        return UpstreamResult(text=strip_prompt_echo(text, query), status_code=resp.status_code)
