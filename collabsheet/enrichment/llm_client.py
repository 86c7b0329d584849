"""
One completion capability over three LLM providers.

OpenAI and Perplexity speak the chat-completions shape and go through the
openai SDK (Perplexity via ``base_url``); Anthropic goes through the
anthropic SDK. The variant is picked by ``ProviderConfig.kind``.

The client never retries: SDK retries are disabled and callers wrap
``complete`` in a RetryPolicy.
"""

import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import anthropic
import openai

from collabsheet.enrichment.exceptions import ApiError, TransportError

logger = logging.getLogger(__name__)

# Request parameters each provider family understands
CHAT_PARAMS = {"model", "temperature", "max_tokens", "response_format", "top_p"}
ANTHROPIC_PARAMS = {"model", "temperature", "max_tokens", "top_p"}
ANTHROPIC_DEFAULT_MAX_TOKENS = 1024


class ProviderKind(str, enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    PERPLEXITY = "perplexity"


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and endpoint for one provider."""
    kind: ProviderKind
    api_key: str
    model: str
    base_url: Optional[str] = None
    api_version: Optional[str] = None
    timeout: float = 120.0


def _error_body(exc: Exception) -> str:
    body = getattr(exc, "body", None)
    if body is None:
        response = getattr(exc, "response", None)
        return getattr(response, "text", "") or ""
    if isinstance(body, (dict, list)):
        return json.dumps(body)
    return str(body)


class LlmClient:
    """Normalizes provider responses into plain completion text."""

    def __init__(self):
        self._clients: Dict[tuple, Any] = {}

    def complete(
        self,
        provider: ProviderConfig,
        system_prompt: str,
        user_prompt: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Send one system+user prompt pair and return the completion text.

        Raises:
            TransportError: the provider could not be reached.
            ApiError: non-success status, or a response with no text.
        """
        params = dict(params or {})
        started = time.monotonic()
        if provider.kind == ProviderKind.ANTHROPIC:
            text = self._complete_anthropic(provider, system_prompt, user_prompt, params)
        else:
            text = self._complete_chat(provider, system_prompt, user_prompt, params)
        logger.debug(
            f"{provider.kind.value} responded in {time.monotonic() - started:.1f}s "
            f"({len(text)} chars)"
        )
        return text

    # ------------------------------------------------------------------
    # SDK clients
    # ------------------------------------------------------------------

    def _sdk_client(self, provider: ProviderConfig):
        key = (provider.kind, provider.api_key, provider.base_url, provider.api_version)
        client = self._clients.get(key)
        if client is not None:
            return client

        if provider.kind == ProviderKind.ANTHROPIC:
            headers = {"anthropic-version": provider.api_version} if provider.api_version else None
            client = anthropic.Anthropic(
                api_key=provider.api_key,
                base_url=provider.base_url,
                timeout=provider.timeout,
                max_retries=0,
                default_headers=headers,
            )
        else:
            client = openai.OpenAI(
                api_key=provider.api_key,
                base_url=provider.base_url,
                timeout=provider.timeout,
                max_retries=0,
            )
        self._clients[key] = client
        return client

    # ------------------------------------------------------------------
    # Chat-completions shape (OpenAI, Perplexity)
    # ------------------------------------------------------------------

    def _complete_chat(self, provider, system_prompt, user_prompt, params) -> str:
        client = self._sdk_client(provider)
        kwargs = {k: v for k, v in params.items() if k in CHAT_PARAMS and v is not None}
        model = kwargs.pop("model", None) or provider.model

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        name = provider.kind.value
        try:
            response = client.chat.completions.create(model=model, messages=messages, **kwargs)
        except openai.APIStatusError as e:
            raise ApiError(
                f"{name} API error: {e.status_code}",
                status_code=e.status_code,
                body=_error_body(e),
            ) from e
        except openai.APIConnectionError as e:
            raise TransportError(f"{name} API unreachable: {e}") from e
        except openai.APIError as e:
            raise ApiError(f"{name} API error: {e}", body=_error_body(e)) from e

        choices = getattr(response, "choices", None) or []
        message = choices[0].message if choices else None
        content = getattr(message, "content", None)
        if not content:
            raise ApiError(
                f"No valid response content from {name} API",
                status_code=200,
                body=str(response)[:500],
            )
        return content

    # ------------------------------------------------------------------
    # Messages shape (Anthropic)
    # ------------------------------------------------------------------

    def _complete_anthropic(self, provider, system_prompt, user_prompt, params) -> str:
        client = self._sdk_client(provider)
        kwargs = {k: v for k, v in params.items() if k in ANTHROPIC_PARAMS and v is not None}
        model = kwargs.pop("model", None) or provider.model
        kwargs.setdefault("max_tokens", ANTHROPIC_DEFAULT_MAX_TOKENS)
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            message = client.messages.create(
                model=model,
                messages=[{"role": "user", "content": user_prompt}],
                **kwargs,
            )
        except anthropic.APIStatusError as e:
            raise ApiError(
                f"anthropic API error: {e.status_code}",
                status_code=e.status_code,
                body=_error_body(e),
            ) from e
        except anthropic.APIConnectionError as e:
            raise TransportError(f"anthropic API unreachable: {e}") from e
        except anthropic.APIError as e:
            raise ApiError(f"anthropic API error: {e}", body=_error_body(e)) from e

        blocks = getattr(message, "content", None) or []
        text = "".join(
            block.text for block in blocks
            if getattr(block, "type", None) == "text" and getattr(block, "text", None)
        )
        if not text:
            raise ApiError(
                "No text content found in anthropic response",
                status_code=200,
                body=str(message)[:500],
            )
        return text
