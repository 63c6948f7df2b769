"""OpenAI LLM client adapter."""

import json
from typing import Any

import openai
from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import (
    LLMAppError,
    MalformedUpstreamResponseError,
    UpstreamAuthError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)


def _translate_error(exc: openai.OpenAIError, model: str) -> LLMAppError:
    """Map an OpenAI SDK exception onto the application error taxonomy.

    APITimeoutError subclasses APIConnectionError, so it is checked first.
    """
    if isinstance(exc, openai.APITimeoutError):
        return UpstreamTimeoutError(
            code="upstream_timeout",
            message="LLM provider did not respond in time",
            details={"model": model},
        )
    if isinstance(exc, openai.APIConnectionError):
        return UpstreamUnavailableError(
            code="upstream_unavailable",
            message="Could not reach the LLM provider",
            details={"model": model},
        )
    if isinstance(exc, openai.RateLimitError):
        return UpstreamRateLimitedError(
            code="upstream_rate_limited",
            message="LLM provider is throttling requests",
            details={"model": model, "upstream_status": exc.status_code},
        )
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return UpstreamAuthError(
            code="upstream_auth_failed",
            message="LLM provider rejected the configured credential",
            details={"model": model, "upstream_status": exc.status_code},
        )
    if isinstance(exc, openai.InternalServerError):
        return UpstreamUnavailableError(
            code="upstream_unavailable",
            message="LLM provider returned a server error",
            details={"model": model, "upstream_status": exc.status_code},
        )
    if isinstance(exc, openai.APIStatusError):
        return LLMAppError(
            code="upstream_request_rejected",
            message="LLM provider rejected the request",
            details={"model": model, "upstream_status": exc.status_code},
        )
    return LLMAppError(
        code="upstream_error",
        message=f"OpenAI API error: {type(exc).__name__}",
        details={"model": model},
    )


class OpenAIClient(AbstractLLMClient):
    """Client for calling OpenAI chat completions and returning JSON.

    SDK-level retries are disabled: the optimizer service owns the retry
    budget so the configured attempt bound is exact.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Model name (e.g., "gpt-4o", "gpt-4o-mini").
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for each request in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )
        self.model = model

    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str,
        schema: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate structured JSON using OpenAI chat completions.

        Args:
            prompt: User prompt to send to the model.
            system_prompt: Fixed instruction sent as the system message.
            schema: Optional JSON schema (enables json_object mode if provided).
            **kwargs: Provider options (temperature, max_tokens, top_p, etc.).

        Returns:
            dict[str, Any]: Parsed JSON object from the LLM response.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]

        temperature = kwargs.pop("temperature", 0.3)

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }

        if schema is not None:
            request_params["response_format"] = {"type": "json_object"}

        allowed_params = {
            "max_tokens",
            "top_p",
            "frequency_penalty",
            "presence_penalty",
            "seed",
        }
        for param in allowed_params:
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.OpenAIError as exc:
            raise _translate_error(exc, self.model) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise MalformedUpstreamResponseError(
                code="upstream_empty_response",
                message="LLM returned an empty response",
                details={"model": self.model},
            )

        try:
            parsed = json.loads(content.strip())
        except json.JSONDecodeError as exc:
            raise MalformedUpstreamResponseError(
                code="upstream_invalid_json",
                message="LLM returned invalid JSON",
                details={"model": self.model, "parse_error": str(exc)},
            ) from exc

        if not isinstance(parsed, dict):
            raise MalformedUpstreamResponseError(
                code="upstream_invalid_json",
                message="LLM returned JSON that is not an object",
                details={"model": self.model, "parse_error": type(parsed).__name__},
            )

        return parsed
