"""Transport to a Responses-style HTTP endpoint."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from roundtrip.exceptions import (
    APIRequestError,
    AuthenticationError,
    RateLimitError,
    ServiceError,
    TransportError,
)
from roundtrip.logging import get_logger
from roundtrip.types.items import ResponseItem
from roundtrip.types.tools import ToolChoice

log = get_logger(__name__)


BODY_PREVIEW_CHARS = 300


@dataclass
class ResponseRequest:
    """One round's request."""

    model: str
    input: list[ResponseItem] = field(default_factory=list)
    tools: list[dict[str, Any]] = field(default_factory=list)
    tool_choice: ToolChoice | None = None
    store: bool | None = None
    previous_response_id: str | None = None
    instructions: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    def to_json(self, stream: bool = False) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "input": [item.to_json() for item in self.input],
        }
        if self.tools:
            body["tools"] = list(self.tools)
        if self.tool_choice is not None:
            body["tool_choice"] = self.tool_choice.to_json()
        if self.store is not None:
            body["store"] = self.store
        if self.previous_response_id is not None:
            body["previous_response_id"] = self.previous_response_id
        if self.instructions is not None:
            body["instructions"] = self.instructions
        body.update(self.options)
        if stream:
            body["stream"] = True
        return body


class ResponsesTransport(ABC):
    """Abstract base class for response transports."""

    @abstractmethod
    async def create(self, request: ResponseRequest) -> dict[str, Any]:
        """Run a round without streaming; returns the terminal snapshot JSON."""
        pass

    @abstractmethod
    def stream(self, request: ResponseRequest) -> AsyncIterator[dict[str, Any]]:
        """Run a round with streaming; yields wire events, closable via aclose()."""
        pass

    async def close(self) -> None:
        return None


def error_from_response(status_code: int, body: str) -> APIRequestError:
    """Map a non-2xx reply to the APIRequestError family."""
    code: str | None = None
    param: str | None = None
    message = ""
    try:
        payload = json.loads(body) if body else None
    except json.JSONDecodeError:
        payload = None
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        code = error.get("code") or error.get("type")
        param = error.get("param")
        message = str(error.get("message") or "")

    preview = body[:BODY_PREVIEW_CHARS]
    if not message:
        message = f"API error {status_code}: {preview}"

    if status_code == 401 or code == "invalid_api_key":
        cls: type[APIRequestError] = AuthenticationError
    elif status_code == 429 or code == "rate_limit_exceeded":
        cls = RateLimitError
    elif status_code >= 500:
        cls = ServiceError
    else:
        cls = APIRequestError
    return cls(message, status_code=status_code, code=code, param=param, body_preview=preview)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Parse server-sent events into JSON payloads.

    Events are framed by blank lines; ``data:`` lines are joined with
    newlines and ``[DONE]`` is skipped. The ``event:`` name fills ``type``
    when the payload has none.
    """
    event_name: str | None = None
    data_lines: list[str] = []

    def flush() -> dict[str, Any] | None:
        nonlocal event_name, data_lines
        raw = "\n".join(data_lines)
        name = event_name
        event_name, data_lines = None, []
        if not raw or raw.strip() == "[DONE]":
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise TransportError(f"Malformed event data: {raw[:BODY_PREVIEW_CHARS]}") from e
        if isinstance(payload, dict) and name and "type" not in payload:
            payload["type"] = name
        return payload

    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            payload = flush()
            if payload is not None:
                yield payload
            continue
        if line.startswith(":"):
            continue
        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field_name == "event":
            event_name = value
        elif field_name == "data":
            data_lines.append(value)

    payload = flush()
    if payload is not None:
        yield payload


class HttpxTransport(ResponsesTransport):
    """Direct HTTP transport over a shared httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        organization: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            base_url: API base URL; requests go to ``{base_url}/responses``
            api_key: Bearer token
            organization: Optional organization header
            timeout: Request timeout in seconds
            client: Optional preconfigured client (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.organization = organization
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @property
    def url(self) -> str:
        return f"{self.base_url}/responses"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    async def create(self, request: ResponseRequest) -> dict[str, Any]:
        body = request.to_json(stream=False)
        try:
            log.debug("Creating response", model=request.model, url=self.url, items=len(request.input))
            response = await self.client.post(self.url, json=body, headers=self._headers())
            log.debug("Response status", status=response.status_code)
            if not response.is_success:
                raise error_from_response(response.status_code, response.text)
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error: {e}") from e
        except json.JSONDecodeError as e:
            raise TransportError(f"Response decode error: {e}") from e

    async def stream(self, request: ResponseRequest) -> AsyncIterator[dict[str, Any]]:
        body = request.to_json(stream=True)
        headers = self._headers()
        headers["Accept"] = "text/event-stream"
        try:
            log.debug("Streaming response", model=request.model, url=self.url, items=len(request.input))
            async with self.client.stream("POST", self.url, json=body, headers=headers) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise error_from_response(response.status_code, error_text)
                async for event in iter_sse_events(response.aiter_lines()):
                    yield event
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP streaming error: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_transport(
    base_url: str | None = None,
    api_key: str | None = None,
    organization: str | None = None,
    timeout: float | None = None,
) -> ResponsesTransport:
    """Create the default transport from explicit values or config."""
    from roundtrip.config import get_config

    cfg = get_config().api
    return HttpxTransport(
        base_url=base_url or cfg.base_url,
        api_key=api_key or cfg.resolved_api_key() or None,
        organization=organization or cfg.organization or None,
        timeout=timeout or cfg.timeout,
    )


# Global transport instance
_transport: ResponsesTransport | None = None


def get_transport() -> ResponsesTransport:
    """Get the global transport instance."""
    global _transport
    if _transport is None:
        _transport = create_transport()
    return _transport


def set_transport(transport: ResponsesTransport | None) -> None:
    """Set the global transport instance."""
    global _transport
    _transport = transport
