"""
LLM client - queued, rate-limited, retrying access to a model provider

Providers only know how to build a request and read a response. Queueing,
rate limiting and retries live in ModelClient and are shared by all of them:

    OpenAIProvider     POST /v1/chat/completions over httpx (bearer token)
    AnthropicProvider  POST /v1/messages over httpx (x-api-key header)
    LiteLLMProvider    anything else (gemini, ollama, ...) via litellm.acompletion

The credential is handed to ModelClient by the caller and only ever lives in
memory.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
from dotenv import load_dotenv

from worldgen.models.config import ProviderConfig

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-5-sonnet-latest",
    "gemini": "gemini-2.5-pro",
    "ollama": "llama3",
}

API_KEY_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


def get_provider() -> str:
    """Get configured LLM provider"""
    return os.getenv("LLM_PROVIDER", "openai")


def get_model() -> str:
    """Get configured model name for world generation.

    Uses BUILDER_LLM_MODEL if set, otherwise falls back to LLM_MODEL, then to
    a per-provider default.
    """
    builder_model = os.getenv("BUILDER_LLM_MODEL")
    llm_model = os.getenv("LLM_MODEL")
    default_model = DEFAULT_MODELS.get(get_provider(), DEFAULT_MODELS["openai"])

    model = builder_model or llm_model or default_model

    logger.debug(f"Model selection: BUILDER_LLM_MODEL={builder_model}, LLM_MODEL={llm_model}, using={model}")

    return model


def get_model_string(provider: str, model: str) -> str:
    """Get the full model string for LiteLLM"""
    # LiteLLM uses prefixed model names for some providers
    if provider in ("gemini", "anthropic", "ollama") and not model.startswith(f"{provider}/"):
        return f"{provider}/{model}"
    return model


def get_api_key(provider: str) -> str:
    """Look up the credential for a provider (WORLDGEN_API_KEY overrides)"""
    override = os.getenv("WORLDGEN_API_KEY")
    if override:
        return override
    var = API_KEY_VARS.get(provider)
    return os.getenv(var, "") if var else ""


# =============================================================================
# Errors and results
# =============================================================================

class ProviderError(Exception):
    """A single provider attempt failed (HTTP status, transport, or payload)"""


class ProviderResponseError(ProviderError):
    """The provider answered but the payload was empty or had an unexpected shape"""


class ModelClientError(Exception):
    """Terminal failure after every retry was spent"""

    def __init__(self, message: str, attempts: int, last_error: str):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class ModelResponse:
    """Normalized provider response"""
    content: str
    tokens_used: int = 0
    duration_ms: int = 0
    attempts: int = 1


@dataclass
class ProviderRequest:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Providers
# =============================================================================

class Provider(ABC):
    """Builds requests for and reads responses from one provider's API"""

    name: str = ""

    @abstractmethod
    def build_request(
        self,
        prompt: str,
        system_prompt: str | None,
        config: ProviderConfig,
        credential: str,
    ) -> ProviderRequest:
        ...

    @abstractmethod
    def parse_response(self, payload: dict) -> tuple[str, int]:
        """Return (content, tokens_used) or raise ProviderResponseError."""
        ...

    async def dispatch(
        self,
        request: ProviderRequest,
        http_client: httpx.AsyncClient,
        timeout: float,
    ) -> dict:
        """POST the request as JSON and return the decoded body."""
        try:
            response = await http_client.post(
                request.url, json=request.body, headers=request.headers, timeout=timeout
            )
        except httpx.TimeoutException as e:
            raise ProviderError(f"Request timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(
                f"{response.status_code}: {response.reason_phrase} - {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"Response body is not JSON: {response.text[:200]}") from e

        if not isinstance(payload, dict):
            raise ProviderResponseError("Response body is not a JSON object")
        return payload


def _usage_tokens(payload: dict, *fields: str) -> int:
    """Sum token counts from payload["usage"]; missing counts are 0"""
    usage = payload.get("usage") or {}
    if not isinstance(usage, dict):
        raise ProviderResponseError(f"Unexpected usage in response: {type(usage).__name__}")

    total = 0
    for name in fields:
        value = usage.get(name) or 0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ProviderResponseError(f"Unexpected {name} in response: {value!r}")
        total += int(value)
    return total


class OpenAIProvider(Provider):
    name = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"

    def build_request(self, prompt, system_prompt, config, credential) -> ProviderRequest:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        return ProviderRequest(
            url=self.endpoint,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {credential}",
            },
            body={
                "model": config.model,
                "temperature": config.temperature,
                "max_tokens": config.max_tokens_per_request,
                "messages": messages,
            },
        )

    def parse_response(self, payload: dict) -> tuple[str, int]:
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderResponseError("No choices in response")

        choice = choices[0]
        if not isinstance(choice, dict):
            raise ProviderResponseError(f"Unexpected choice in response: {type(choice).__name__}")

        message = choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ProviderResponseError(f"Unexpected message content in response: {type(content).__name__}")
        if not content:
            raise ProviderResponseError("Empty message content in response")

        if choice.get("finish_reason") == "length":
            logger.warning("Response TRUNCATED due to max_tokens limit.")

        return content, _usage_tokens(payload, "total_tokens")


class AnthropicProvider(Provider):
    name = "anthropic"
    endpoint = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"

    def build_request(self, prompt, system_prompt, config, credential) -> ProviderRequest:
        body: dict[str, Any] = {
            "model": config.model,
            "max_tokens": config.max_tokens_per_request,
            "temperature": config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["system"] = system_prompt

        return ProviderRequest(
            url=self.endpoint,
            headers={
                "Content-Type": "application/json",
                "x-api-key": credential,
                "anthropic-version": self.api_version,
            },
            body=body,
        )

    def parse_response(self, payload: dict) -> tuple[str, int]:
        blocks = payload.get("content")
        if not isinstance(blocks, list):
            raise ProviderResponseError(f"Unexpected content in response: {type(blocks).__name__}")

        parts = []
        for block in blocks:
            if not isinstance(block, dict) or block.get("type", "text") != "text":
                continue
            text = block.get("text", "")
            if not isinstance(text, str):
                raise ProviderResponseError(f"Unexpected text block in response: {type(text).__name__}")
            parts.append(text)
        text = "".join(parts)
        if not text:
            raise ProviderResponseError("No content in response")

        if payload.get("stop_reason") == "max_tokens":
            logger.warning("Response TRUNCATED due to max_tokens limit.")

        return text, _usage_tokens(payload, "input_tokens", "output_tokens")


class LiteLLMProvider(OpenAIProvider):
    """Routes through LiteLLM, which answers in the OpenAI response shape"""

    def __init__(self, provider: str):
        self.name = provider

    def build_request(self, prompt, system_prompt, config, credential) -> ProviderRequest:
        request = super().build_request(prompt, system_prompt, config, credential)
        request.url = ""
        request.headers = {}
        request.body["model"] = get_model_string(self.name, config.model)
        if credential:
            request.body["api_key"] = credential
        if self.name == "ollama":
            request.body["api_base"] = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
        return request

    async def dispatch(self, request, http_client, timeout) -> dict:
        import litellm

        try:
            response = await litellm.acompletion(timeout=timeout, **request.body)
        except Exception as e:
            raise ProviderError(f"{type(e).__name__}: {e}") from e

        if hasattr(response, "model_dump"):
            return response.model_dump()
        return dict(response)


def get_provider_class(provider: str) -> Provider:
    """Pick the provider implementation for a provider name"""
    if provider == "openai":
        return OpenAIProvider()
    if provider == "anthropic":
        return AnthropicProvider()
    return LiteLLMProvider(provider)


# =============================================================================
# Client
# =============================================================================

@dataclass
class _PendingRequest:
    prompt: str
    system_prompt: str | None
    future: asyncio.Future


class ModelClient:
    """
    Single-consumer request queue in front of a provider.

    Every send() is queued and a single worker task drains the queue, so no
    two requests are ever in flight at once. Before each request the worker
    waits until request_delay_ms has passed since the previous request
    returned. A failed attempt is retried after retry_delay_ms, for at most
    max_retries attempts in total.

    Usage:
        async with ModelClient(config, credential) as client:
            response = await client.send(prompt, system_prompt)
    """

    def __init__(
        self,
        config: ProviderConfig,
        credential: str,
        provider: Provider | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_status: Callable[[str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ):
        self.config = config
        self.provider = provider or get_provider_class(config.provider)
        self.on_status = on_status
        self.on_error = on_error

        self._credential = credential
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._queue: asyncio.Queue | None = None
        self._worker: asyncio.Task | None = None
        self._last_request_at: float | None = None

    async def __aenter__(self) -> "ModelClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def send(self, prompt: str, system_prompt: str | None = None) -> ModelResponse:
        """
        Queue a prompt and wait for its response.

        Raises:
            ModelClientError: every attempt failed
        """
        self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_PendingRequest(prompt, system_prompt, future))
        return await future

    async def aclose(self):
        """Stop the worker and release the HTTP connection pool"""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self._queue = None

        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _ensure_worker(self):
        if self._worker is None or self._worker.done():
            self._queue = asyncio.Queue()
            self._worker = asyncio.create_task(self._drain_queue())

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self._http_client

    async def _drain_queue(self):
        while True:
            pending = await self._queue.get()
            try:
                if pending.future.cancelled():
                    continue
                try:
                    result = await self._process(pending)
                except Exception as e:
                    if not pending.future.done():
                        pending.future.set_exception(e)
                else:
                    if not pending.future.done():
                        pending.future.set_result(result)
            finally:
                self._queue.task_done()

    async def _wait_for_rate_limit(self):
        if self._last_request_at is None:
            return
        delay = self.config.request_delay_ms / 1000
        elapsed = time.monotonic() - self._last_request_at
        if elapsed < delay:
            logger.debug(f"Rate limit: waiting {delay - elapsed:.3f}s")
            await asyncio.sleep(delay - elapsed)

    async def _process(self, pending: _PendingRequest) -> ModelResponse:
        max_attempts = max(1, self.config.max_retries)
        last_error = ""

        for attempt in range(1, max_attempts + 1):
            await self._wait_for_rate_limit()

            self._notify(self.on_status, f"Sending request to {self.provider.name} (attempt {attempt}/{max_attempts})")
            logger.info(
                f"LLM Request: provider={self.provider.name}, model={self.config.model}, "
                f"attempt={attempt}/{max_attempts}, prompt_length={len(pending.prompt)}"
            )

            started = time.monotonic()
            try:
                request = self.provider.build_request(
                    pending.prompt, pending.system_prompt, self.config, self._credential
                )
                payload = await self.provider.dispatch(
                    request, self._get_http_client(), self.config.timeout_seconds
                )
                content, tokens = self.provider.parse_response(payload)
            except ProviderError as e:
                self._last_request_at = time.monotonic()
                last_error = str(e)
                logger.warning(f"LLM attempt {attempt}/{max_attempts} failed: {last_error}")
                self._notify(self.on_error, f"Request failed (attempt {attempt}/{max_attempts}): {last_error}")
                if attempt < max_attempts:
                    await asyncio.sleep(self.config.retry_delay_ms / 1000)
                continue

            self._last_request_at = time.monotonic()
            duration_ms = int((self._last_request_at - started) * 1000)
            logger.info(f"LLM Response: tokens={tokens}, duration_ms={duration_ms}, content_length={len(content)}")
            return ModelResponse(content=content, tokens_used=tokens, duration_ms=duration_ms, attempts=attempt)

        message = f"Request failed after {max_attempts} attempts: {last_error}"
        logger.error(message)
        raise ModelClientError(message, attempts=max_attempts, last_error=last_error)

    def _notify(self, callback: Callable[[str], None] | None, message: str):
        if callback is None:
            return
        try:
            callback(message)
        except Exception as e:
            logger.error(f"Error in client listener: {e}")
