from abc import ABC, abstractmethod
from typing import Any


class AbstractLLMClient(ABC):
	"""Interface for LLM clients that produce structured JSON outputs."""

	@abstractmethod
	async def generate_json(
		self,
		prompt: str,
		*,
		system_prompt: str,
		schema: dict[str, Any] | None = None,
		**kwargs: Any,
	) -> dict[str, Any]:
		"""Generate a structured JSON response from the model.

		Args:
			prompt: User prompt to send to the model.
			system_prompt: Fixed instruction sent as the system message.
			schema: Optional JSON schema; providers that support it enable JSON mode.
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			dict[str, Any]: Parsed JSON object returned by the model.

		Raises:
			UpstreamTimeoutError: The provider did not answer in time.
			UpstreamUnavailableError: Transport failure or provider-side 5xx.
			UpstreamRateLimitedError: The provider throttled the request.
			UpstreamAuthError: The provider rejected the credential.
			MalformedUpstreamResponseError: The reply was empty or not a JSON object.
			LLMAppError: Any other provider-side rejection.
		"""
		...
