"""LiteLLM client wrappers for the generation and embedding services.

All model traffic goes through this module. Transport failures are turned
into ``UpstreamUnavailable`` here, at the call site, and responses without the
expected fields into ``MalformedResponse``. No automatic retries
(``num_retries=0``): a failed call fails the step that made it.

The default provider is a local Ollama server; availability, model-presence
and context-length checks talk to its HTTP API directly.
"""

from __future__ import annotations

import json
import re
import urllib.error
import urllib.request
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import litellm
import structlog

from schemalens.errors import MalformedResponse, UpstreamUnavailable
from schemalens.rag.models import ChatMessage

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]

logger = structlog.get_logger(__name__)

DEFAULT_OLLAMA_BASE = "http://localhost:11434"
DEFAULT_CONTEXT_LENGTH = 8_192
_HTTP_TIMEOUT = 5  # seconds, health checks only

_UNREACHABLE_ERRORS: tuple[type[BaseException], ...] = (
    litellm.exceptions.APIConnectionError,
    litellm.exceptions.ServiceUnavailableError,
    litellm.exceptions.Timeout,
)

_NUM_CTX_RE = re.compile(r"\bnum_ctx\s+(\d+)", re.IGNORECASE)


def is_ollama(model: str) -> bool:
    return model.split("/", 1)[0].lower() in ("ollama", "ollama_chat")


def _bare_model(model: str) -> str:
    return model.split("/", 1)[1] if "/" in model else model


@contextmanager
def _upstream(api_base: str | None, what: str) -> Iterator[None]:
    """Map LiteLLM transport errors to UpstreamUnavailable."""
    try:
        yield
    except _UNREACHABLE_ERRORS as exc:
        raise UpstreamUnavailable(
            f"{what} failed: service unreachable at {api_base or 'provider default'} ({exc})",
            api_base=api_base,
        ) from exc


class GenerationService:
    """Text generation: one-shot completions and streamed chat.

    Args:
        model: LiteLLM model string (provider/model format).
        api_base: Server URL; defaults to the local Ollama port for ollama models.
        context_length: Override for the model's context window in tokens.
    """

    def __init__(
        self,
        model: str,
        api_base: str | None = None,
        context_length: int | None = None,
        temperature: float = 0.0,
    ) -> None:
        self.model = model
        self.api_base = api_base or (DEFAULT_OLLAMA_BASE if is_ollama(model) else None)
        self._context_length = context_length
        self._temperature = temperature

    def generate(self, prompt: str, system: str | None = None, max_tokens: int | None = None) -> str:
        """Non-streaming completion. Returns the trimmed response text.

        Raises:
            UpstreamUnavailable: The service could not be reached.
            MalformedResponse: The response carried no text content.
        """
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        with _upstream(self.api_base, "Generation"):
            response = litellm.completion(
                model=self.model,
                messages=messages,
                api_base=self.api_base,
                temperature=self._temperature,
                max_tokens=max_tokens,
                num_retries=0,
            )
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise MalformedResponse("Generation response has no choices/message.") from exc
        if not isinstance(content, str):
            raise MalformedResponse("Generation response missing text content.")
        return content.strip()

    def stream_chat(
        self, system: str, history: list[ChatMessage], message: str
    ) -> Iterator[str]:
        """Stream the reply to *message* token by token."""
        messages = [
            {"role": "system", "content": system},
            *(m.to_api() for m in history),
            {"role": "user", "content": message},
        ]
        with _upstream(self.api_base, "Chat"):
            stream = litellm.completion(
                model=self.model,
                messages=messages,
                api_base=self.api_base,
                temperature=self._temperature,
                stream=True,
                num_retries=0,
            )
            for part in stream:
                try:
                    token = part.choices[0].delta.content
                except (AttributeError, IndexError) as exc:
                    raise MalformedResponse("Chat stream chunk has no delta.") from exc
                if token:
                    yield token

    def context_length(self) -> int:
        """Return the model's context window in tokens.

        Order: explicit override, Ollama ``/api/show`` (``num_ctx`` parameter,
        then ``*context_length`` model info), LiteLLM model info, 8192.
        """
        if self._context_length:
            return self._context_length
        if is_ollama(self.model):
            n = self._ollama_context_length()
            if n:
                return n
        try:
            info = litellm.get_model_info(self.model)
            n = info.get("max_input_tokens") or info.get("max_tokens")
            if n:
                return int(n)
        except Exception as exc:  # unknown models raise a provider-specific error
            logger.debug("model_info_unavailable", model=self.model, error=str(exc))
        logger.info("context_length_fallback", model=self.model, tokens=DEFAULT_CONTEXT_LENGTH)
        return DEFAULT_CONTEXT_LENGTH

    def is_available(self) -> bool:
        """True if the Ollama server answers ``/api/tags``. Non-Ollama models: True."""
        if not is_ollama(self.model):
            return True
        try:
            data = _get_json(f"{self.api_base}/api/tags")
        except (urllib.error.URLError, OSError, ValueError):
            return False
        return isinstance(data.get("models"), list)

    def is_model_pulled(self) -> bool:
        """True if the configured model appears in Ollama's local model list."""
        return model_pulled(self.model, self.api_base)

    def _ollama_context_length(self) -> int | None:
        try:
            data = _post_json(f"{self.api_base}/api/show", {"model": _bare_model(self.model)})
        except (urllib.error.URLError, OSError, ValueError) as exc:
            logger.info("context_length_probe_failed", model=self.model, error=str(exc))
            return None
        params = data.get("parameters")
        if isinstance(params, str):
            match = _NUM_CTX_RE.search(params)
            if match:
                return max(1, int(match.group(1)))
        model_info = data.get("model_info")
        if isinstance(model_info, dict):
            for key, value in model_info.items():
                if key.endswith("context_length") and isinstance(value, int) and value > 0:
                    return value
        return None


class EmbeddingService:
    """Text embeddings via ``litellm.embedding()``."""

    def __init__(self, model: str, api_base: str | None = None) -> None:
        self.model = model
        self.api_base = api_base or (DEFAULT_OLLAMA_BASE if is_ollama(model) else None)

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one call; vectors come back in input order.

        Raises:
            UpstreamUnavailable: The service could not be reached.
            MalformedResponse: Missing vectors or a count mismatch.
        """
        if not texts:
            return []
        with _upstream(self.api_base, "Embedding"):
            response = litellm.embedding(
                model=self.model,
                input=texts,
                api_base=self.api_base,
                num_retries=0,
            )
        try:
            vectors = [list(item["embedding"]) for item in response.data]
        except (AttributeError, KeyError, TypeError) as exc:
            raise MalformedResponse("Embedding response missing 'embedding' vectors.") from exc
        if len(vectors) != len(texts):
            raise MalformedResponse(
                f"Embedding response has {len(vectors)} vectors for {len(texts)} inputs."
            )
        return vectors

    def is_model_pulled(self) -> bool:
        return model_pulled(self.model, self.api_base)


def model_pulled(model: str, api_base: str | None) -> bool:
    """True if *model* is present in Ollama's ``/api/tags``; non-Ollama: True."""
    if not is_ollama(model):
        return True
    try:
        data = _get_json(f"{api_base or DEFAULT_OLLAMA_BASE}/api/tags")
    except (urllib.error.URLError, OSError, ValueError):
        return False
    want = _bare_model(model)
    names = {m.get("name") for m in data.get("models") or [] if isinstance(m, dict)}
    return want in names or f"{want}:latest" in names


# ------------------------------------------------------------------
# Ollama HTTP helpers
# ------------------------------------------------------------------


def _get_json(url: str) -> dict[str, Any]:
    with urllib.request.urlopen(url, timeout=_HTTP_TIMEOUT) as resp:  # noqa: S310
        data = json.loads(resp.read().decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected response from {url}")
    return data


def _post_json(url: str, payload: dict[str, Any]) -> dict[str, Any]:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    with urllib.request.urlopen(req, timeout=_HTTP_TIMEOUT) as resp:  # noqa: S310
        data = json.loads(resp.read().decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected response from {url}")
    return data
