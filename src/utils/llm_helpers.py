"""
Generative backends.

Every backend exposes the same two calling conventions:

- ``generate(prompt) -> Completion``: the whole response plus a token count
- ``stream(prompt)``: an async iterator of text fragments

``generate`` buffers the stream when ``settings.llm_stream`` is on, so
callers never need to know which convention the transport actually uses.
"""

import json
from typing import AsyncIterator, Optional, Protocol

import httpx
from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel

from src.config.settings import Settings, get_settings
from src.utils.line_buffer import LineBuffer
from src.utils.logger import get_logger

logger = get_logger(__name__)


class BackendError(RuntimeError):
    """Raised when a backend call fails or a stream reports an error."""


class Completion(BaseModel):
    """One finished generation."""

    text: str
    tokens: int = 0


class GenerativeBackend(Protocol):
    async def generate(self, prompt: str) -> Completion: ...

    def stream(self, prompt: str) -> AsyncIterator[str]: ...


def count_words(text: str | None) -> int:
    """Whitespace-delimited word count."""
    return len(text.split()) if text else 0


def _content_text(content) -> str:
    """Flatten LangChain message content (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or []:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


async def collect_stream(fragments: AsyncIterator[str]) -> Completion:
    """Buffer a fragment stream into a single Completion."""
    parts = [fragment async for fragment in fragments]
    text = "".join(parts)
    return Completion(text=text, tokens=count_words(text))


# =============================================================================
# Gemini (LangChain)
# =============================================================================


class GeminiBackend:
    """Gemini through langchain-google-genai."""

    def __init__(self, settings: Optional[Settings] = None, model_name: Optional[str] = None):
        self.settings = settings or get_settings()
        self.model_name = model_name or self.settings.gemini_model
        self._llm: Optional[ChatGoogleGenerativeAI] = None

    @property
    def llm(self) -> ChatGoogleGenerativeAI:
        """Lazy initialization of the chat model."""
        if self._llm is None:
            if not self.settings.google_api_key:
                raise BackendError("GOOGLE_API_KEY is required for the Gemini backend")
            self._llm = ChatGoogleGenerativeAI(
                model=self.model_name,
                google_api_key=self.settings.google_api_key,
                temperature=self.settings.llm_temperature,
                max_retries=0,  # retries are budgeted by ResponseValidator
            )
            logger.debug(f"Initialized LLM with model: {self.model_name}")
        return self._llm

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        async for chunk in self.llm.astream([HumanMessage(content=prompt)]):
            text = _content_text(chunk.content)
            if text:
                yield text

    async def generate(self, prompt: str) -> Completion:
        if self.settings.llm_stream:
            return await collect_stream(self.stream(prompt))

        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        text = _content_text(response.content)
        usage = getattr(response, "usage_metadata", None) or {}
        tokens = usage.get("output_tokens") or count_words(text)
        logger.debug(f"{self.model_name}: {usage.get('input_tokens', 0)} in / {tokens} out")
        return Completion(text=text, tokens=tokens)


# =============================================================================
# Ollama (NDJSON stream)
# =============================================================================


class OllamaBackend:
    """Local Ollama server, always called in streaming mode."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.endpoint = self.settings.ollama_base_url.rstrip("/") + "/api/generate"
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.llm_timeout, transport=self._transport)

    async def _records(self, prompt: str) -> AsyncIterator[dict]:
        payload = {"model": self.settings.ollama_model, "prompt": prompt, "stream": True}
        async with self._client() as client:
            async with client.stream("POST", self.endpoint, json=payload) as response:
                if response.status_code >= 400:
                    raise BackendError(f"Ollama API error! status: {response.status_code}")
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError as e:
                        logger.warning(f"Skipping malformed Ollama record: {e}")
                        continue
                    if record.get("error"):
                        raise BackendError(f"Ollama error: {record['error']}")
                    yield record
                    if record.get("done"):
                        return

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        async for record in self._records(prompt):
            if record.get("response"):
                yield record["response"]

    async def generate(self, prompt: str) -> Completion:
        parts = []
        tokens = 0
        async for record in self._records(prompt):
            parts.append(record.get("response", ""))
            tokens = record.get("eval_count", tokens)
        text = "".join(parts)
        return Completion(text=text, tokens=tokens or count_words(text))


# =============================================================================
# SSE relay ("data: {...}" records)
# =============================================================================


def decode_sse_line(line: str) -> Optional[dict]:
    """
    Decode one ``data: <json>`` line.

    Returns:
        The JSON payload, or None for blank, comment or non-data lines
    """
    if not line.startswith("data:"):
        return None
    body = line[len("data:"):].strip()
    if not body:
        return None
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed SSE record: {body[:80]}")
        return None
    return payload if isinstance(payload, dict) else None


async def iter_sse_content(chunks: AsyncIterator[str | bytes]) -> AsyncIterator[str]:
    """
    Yield ``content`` fragments from a chunked SSE body.

    Lines are reassembled across chunk boundaries. Stops at end of stream;
    an ``error`` field raises BackendError.
    """
    buffer = LineBuffer()

    async def _lines():
        async for chunk in chunks:
            for line in buffer.feed(chunk):
                yield line
        tail = buffer.flush()
        if tail:
            yield tail

    async for line in _lines():
        payload = decode_sse_line(line)
        if payload is None:
            continue
        if payload.get("error"):
            raise BackendError(str(payload["error"]))
        if payload.get("content"):
            yield payload["content"]


class SSEStreamBackend:
    """Reads a generation relay such as this app's own ``/api/generate``."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.url = self.settings.sse_generate_url
        self._transport = transport

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        async with httpx.AsyncClient(timeout=self.settings.llm_timeout, transport=self._transport) as client:
            async with client.stream("POST", self.url, json={"prompt": prompt}) as response:
                if response.status_code >= 400:
                    raise BackendError(f"Relay error! status: {response.status_code}")
                async for fragment in iter_sse_content(response.aiter_bytes()):
                    yield fragment

    async def generate(self, prompt: str) -> Completion:
        return await collect_stream(self.stream(prompt))


def get_backend(settings: Optional[Settings] = None) -> GenerativeBackend:
    """Build the backend selected by ``settings.llm_provider``."""
    settings = settings or get_settings()
    if settings.llm_provider == "ollama":
        return OllamaBackend(settings)
    if settings.llm_provider == "sse":
        return SSEStreamBackend(settings)
    return GeminiBackend(settings)
