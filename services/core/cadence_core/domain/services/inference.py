"""Completion service client.

Talks to an OpenAI-compatible chat completions endpoint (OpenRouter by
default). Prompts in this codebase are sent as a single user message with a
fixed model id.

Usage:
    config = InferenceConfig(base_url="https://openrouter.ai/api/v1", api_key="...")
    client = InferenceClient(config=config)

    response = await client.prompt("Summarize ...", temperature=0.3)
    print(response.content)
    print(response.model_info.to_dict())
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from cadence_core.domain.errors import UpstreamError, UpstreamTimeout
from cadence_core.observability import get_logger

logger = get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InferenceError(UpstreamError):
    """Base exception for completion service errors."""

    code = "inference_error"
    user_message = "The AI service is unavailable right now. Please try again."


class ConnectionInferenceError(InferenceError):
    """The completion service could not be reached."""

    pass


class TimeoutInferenceError(InferenceError, UpstreamTimeout):
    """The completion service did not answer in time."""

    code = "upstream_timeout"
    user_message = "The AI service took too long to respond. Please try again."


class ResponseInferenceError(InferenceError):
    """The completion service answered with an error or an unusable envelope."""

    pass


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class InferenceConfig:
    """Configuration for the completion client.

    Attributes:
        base_url: API root including the version segment.
        model_name: Fixed model identifier sent with every request.
        timeout: Request timeout in seconds.
        max_tokens: Maximum tokens to generate.
        temperature: Default sampling temperature.
        api_key: Bearer key for the service.
    """

    base_url: str
    model_name: str = "meta-llama/llama-3.3-70b-instruct:free"
    timeout: float = 60.0
    max_tokens: int = 1024
    temperature: float = 0.7
    api_key: Optional[str] = None
    app_name: str = "Cadence"


@dataclass
class ChatMessage:
    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelInfo:
    """Model and run metadata kept alongside generated records."""

    model_name: str
    provider: str
    temperature: float
    max_tokens: int
    input_tokens: int
    output_tokens: int
    latency_ms: int
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "model_name": self.model_name,
            "provider": self.provider,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "latency_ms": self.latency_ms,
            **self.extra,
        }


@dataclass
class ChatResponse:
    """Response from a chat request.

    Attributes:
        content: Generated text, possibly empty.
        model_info: Model and run metadata.
        finish_reason: Why generation stopped (stop, length, etc.)
    """

    content: str
    model_info: ModelInfo
    finish_reason: str


# =============================================================================
# INFERENCE CLIENT
# =============================================================================


class InferenceClient:
    """Client for OpenAI-compatible chat completions."""

    def __init__(
        self,
        config: InferenceConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {"X-Title": self.config.app_name}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _make_request(
        self,
        messages: list[dict],
        temperature: float,
        max_tokens: int,
    ) -> dict:
        """POST a chat completion request.

        Raises:
            ConnectionInferenceError: Network failure.
            TimeoutInferenceError: Request timed out.
            ResponseInferenceError: Non-2xx status or non-JSON body.
        """
        client = await self._get_http_client()
        payload = {
            "model": self.config.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        logger.debug(
            "Completion request",
            model=self.config.model_name,
            temperature=temperature,
            prompt_chars=sum(len(m["content"]) for m in messages),
        )

        try:
            response = await client.post("/chat/completions", json=payload)
        except httpx.TimeoutException as e:
            raise TimeoutInferenceError(f"Timeout error: {e!r}") from e
        except httpx.TransportError as e:
            raise ConnectionInferenceError(f"Connection error: {e!r}") from e

        if not response.is_success:
            raise ResponseInferenceError(
                f"Completion service returned {response.status_code}",
                status=response.status_code,
                body=response.text[:2000],
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ResponseInferenceError(
                "Completion service returned invalid JSON",
                status=response.status_code,
                body=response.text[:2000],
            ) from e
        if not isinstance(data, dict):
            raise ResponseInferenceError("Completion service returned a non-object body")
        return data

    async def chat(
        self,
        messages: list[ChatMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Send a chat request.

        Returns:
            ChatResponse. ``content`` may be empty; callers decide whether
            that is an error.

        Raises:
            InferenceError: On transport, status or envelope errors.
        """
        temp = temperature if temperature is not None else self.config.temperature
        tokens = max_tokens if max_tokens is not None else self.config.max_tokens
        message_dicts = [{"role": m.role, "content": m.content} for m in messages]

        start_time = time.monotonic()
        response_data = await self._make_request(message_dicts, temp, tokens)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        if "error" in response_data:
            error_info = response_data["error"]
            if isinstance(error_info, dict):
                error_msg = error_info.get("message", str(error_info))
            else:
                error_msg = str(error_info)
            logger.error("Completion service returned error", detail=error_msg)
            raise ResponseInferenceError(f"Completion service error: {error_msg}", body=error_info)

        try:
            choices = response_data.get("choices") or []
            choice = choices[0] if choices else {}
            content = (choice.get("message") or {}).get("content") or ""
            finish_reason = choice.get("finish_reason") or "unknown"
            usage: dict[str, Any] = response_data.get("usage") or {}
        except (AttributeError, TypeError) as e:
            raise ResponseInferenceError(f"Invalid response format: {e}") from e

        model_info = ModelInfo(
            model_name=response_data.get("model") or self.config.model_name,
            provider="openai-compatible",
            temperature=temp,
            max_tokens=tokens,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            latency_ms=elapsed_ms,
        )
        return ChatResponse(content=content, model_info=model_info, finish_reason=finish_reason)

    async def prompt(
        self,
        text: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Send ``text`` as a single user message."""
        return await self.chat(
            [ChatMessage(role="user", content=text)],
            temperature=temperature,
            max_tokens=max_tokens,
        )


__all__ = [
    "ChatMessage",
    "ChatResponse",
    "ConnectionInferenceError",
    "InferenceClient",
    "InferenceConfig",
    "InferenceError",
    "ModelInfo",
    "ResponseInferenceError",
    "TimeoutInferenceError",
]
