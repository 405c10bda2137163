"""Custom exceptions for roundtrip."""

from typing import Any


class RoundtripError(Exception):
    """Base exception for roundtrip."""

    pass


class ConfigurationError(RoundtripError):
    """Configuration-related errors."""

    pass


class UnknownToolChoiceError(ConfigurationError):
    """Tool choice references a tool that is not registered."""

    def __init__(self, key: str):
        super().__init__(f"Tool choice references unregistered tool: {key}")
        self.key = key


class TransportError(RoundtripError):
    """Transport-level errors (connection, protocol, HTTP)."""

    pass


class APIRequestError(TransportError):
    """Remote API rejected the request (non-2xx)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        param: str | None = None,
        body_preview: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.param = param
        self.body_preview = body_preview


class AuthenticationError(APIRequestError):
    """API key missing or rejected."""

    pass


class RateLimitError(APIRequestError):
    """Rate limit exceeded."""

    pass


class ServiceError(APIRequestError):
    """Remote service failure (5xx)."""

    pass


class IncompleteStreamError(TransportError):
    """Event stream closed before a terminal event arrived."""

    def __init__(self, message: str = "stream closed without a terminal response event"):
        super().__init__(message)


class ProtocolError(RoundtripError):
    """Events or items violated the response protocol."""

    pass


class ResponseFailedError(RoundtripError):
    """Remote API reported a terminal failure on the response."""

    def __init__(self, error: Any, response: Any = None):
        code = getattr(error, "code", None)
        message = getattr(error, "message", None) or str(error)
        super().__init__(f"Response failed ({code}): {message}" if code else f"Response failed: {message}")
        self.error = error
        self.response = response
        self.code = code


class ToolError(RoundtripError):
    """Tool-related errors."""

    pass


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class DuplicateToolError(ToolError):
    """A tool with the same key is already registered."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool already registered: {tool_name}")
        self.tool_name = tool_name


class ToolBlockedError(ToolError):
    """Tool execution blocked by policy."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' blocked: {reason}")
        self.tool_name = tool_name
        self.reason = reason


class InvalidArgumentsError(ToolError):
    """Tool-call arguments could not be parsed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Invalid arguments for '{tool_name}': {message}")
        self.tool_name = tool_name


class HandlerExecutionError(ToolError):
    """Tool handler raised or timed out."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class UnhandledToolCallError(ToolError):
    """Model requested tools that have no registered handler."""

    def __init__(self, calls: list[Any]):
        names = ", ".join(sorted({str(getattr(call, "tool_key", "?")) for call in calls}))
        super().__init__(f"No handler registered for tool call(s): {names}")
        self.calls = list(calls)


class SessionError(RoundtripError):
    """Session-related errors."""

    pass


class SessionClosedError(SessionError):
    """Session already reached a terminal state."""

    def __init__(self, status: str):
        super().__init__(f"Session is {status}")
        self.status = status


class SessionCancelledError(SessionError):
    """Session was cancelled by the caller."""

    def __init__(self, message: str = "Session cancelled"):
        super().__init__(message)


class PendingToolCallsError(SessionError):
    """Next round requested while tool calls are still unanswered."""

    def __init__(self, call_ids: list[str]):
        super().__init__(f"Tool calls still pending: {', '.join(call_ids)}")
        self.call_ids = list(call_ids)


class RoundLimitError(SessionError):
    """Session exceeded the configured number of rounds."""

    def __init__(self, max_rounds: int):
        super().__init__(f"Round limit reached: {max_rounds}")
        self.max_rounds = max_rounds
