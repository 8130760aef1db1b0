"""
LiteLLM-powered chat completion helpers, including schema-constrained JSON generation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, MutableMapping, Sequence

import httpx
import openai
from litellm import completion

from .errors import ClientRequestError, TransientProviderError

ChatMessage = Mapping[str, Any]

logger = logging.getLogger(__name__)


@dataclass
class ChatResult:
    """
    Structured response returned from an LLM chat completion.
    """

    text: str
    raw: Any


CompletionCallable = Callable[..., ChatResult]


def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Invoke LiteLLM's `completion` API and return the consolidated text.

    Provider and transport failures are re-raised as :class:`ClientRequestError`
    for 4xx responses and :class:`TransientProviderError` otherwise. Any other
    exception propagates unchanged.
    """
    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": list(messages),
    }

    if temperature is not None:
        payload["temperature"] = temperature

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if api_key is not None:
        payload["api_key"] = api_key

    payload.update(extra_kwargs)

    try:
        response = completion(**payload)
    except (openai.APIError, httpx.TransportError) as exc:
        raise _classify_provider_error(exc) from exc
    except Exception as exc:
        if not isinstance(getattr(exc, "status_code", None), int):
            raise
        raise _classify_provider_error(exc) from exc

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise TransientProviderError("Unexpected LiteLLM response format.") from exc

    text = str(message or "").strip()
    return ChatResult(text=text, raw=response)


def generate_structured(
    *,
    model: str,
    content: str,
    system_instruction: str,
    schema: Mapping[str, Any],
    schema_name: str,
    api_key: str | None = None,
    temperature: float | None = None,
    completion_fn: CompletionCallable | None = None,
) -> dict[str, Any]:
    """
    Ask the model for a JSON object that conforms to ``schema`` and return it parsed.

    Parameters
    ----------
    model:
        LiteLLM model identifier.
    content:
        User content (the battle description).
    system_instruction:
        Stage-specific instructions sent as the system message.
    schema:
        JSON schema the response must follow.
    schema_name:
        Name reported to the provider for the schema.
    completion_fn:
        Optional drop-in replacement for :func:`call_chat_completion`.
    """
    runner = completion_fn or call_chat_completion
    messages = [
        {"role": "system", "content": system_instruction},
        {"role": "user", "content": content},
    ]
    result = runner(
        model=model,
        messages=messages,
        temperature=temperature,
        api_key=api_key,
        response_format={
            "type": "json_schema",
            "json_schema": {"name": schema_name, "schema": dict(schema)},
        },
    )

    text = _strip_code_fence(result.text)
    if not text:
        raise TransientProviderError(f"Model returned an empty response for {schema_name}.")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TransientProviderError(
            f"Model returned invalid JSON for {schema_name}: {exc.msg}"
        ) from exc
    if not isinstance(parsed, dict):
        raise TransientProviderError(f"Model returned a non-object JSON payload for {schema_name}.")

    logger.debug("Structured response for %s: %s", schema_name, parsed)
    return parsed


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def _classify_provider_error(exc: Exception) -> Exception:
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int) and 400 <= status_code < 500 and status_code != 429:
        return ClientRequestError(str(exc), status_code=status_code)
    return TransientProviderError(str(exc), status_code=status_code)


__all__ = [
    "ChatMessage",
    "ChatResult",
    "CompletionCallable",
    "call_chat_completion",
    "generate_structured",
]
