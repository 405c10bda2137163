"""Tool handler base classes and the handler registry."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, model_validator

from roundtrip.exceptions import (
    ConfigurationError,
    DuplicateToolError,
    ToolNotFoundError,
    UnknownToolChoiceError,
)
from roundtrip.logging import get_logger
from roundtrip.types.events import ResponseEvent
from roundtrip.types.items import (
    ComputerAction,
    ComputerCall,
    ComputerScreenshot,
    LocalShellAction,
    McpApprovalRequest,
    ResponseItem,
    SafetyCheck,
)
from roundtrip.types.tools import (
    CodeInterpreterTool,
    ComputerUseTool,
    FunctionTool,
    ImageGenerationTool,
    LocalShellTool,
    McpTool,
    ToolChoice,
    ToolChoiceMode,
    ToolDeclaration,
    WebSearchTool,
)

log = get_logger(__name__)


class ToolResult(BaseModel):
    """Result from tool execution."""

    success: bool = True
    content: str = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = (self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


class ToolHandler(ABC):
    """Base class for every handler kind.

    A handler owns one tool declaration. The registry keys it by the
    declaration's ``key``; call items are matched against that key.
    """

    # None falls back to config.tools.timeout_seconds.
    timeout_seconds: float | None = None

    @property
    @abstractmethod
    def declaration(self) -> ToolDeclaration:
        pass

    @property
    def key(self) -> str:
        return self.declaration.key

    def get_definition(self) -> dict[str, Any]:
        """Wire JSON for the request's ``tools`` list."""
        return self.declaration.to_json()

    def timeout_for(self, call: ResponseItem) -> float | None:
        """Per-call execution deadline in seconds."""
        return self.timeout_seconds

    async def on_event(self, event: ResponseEvent) -> None:
        """Observe every canonical event of a round."""
        return None

    async def on_call(self, item: ResponseItem) -> None:
        """Observe a finished call item matched to this handler."""
        return None


class FunctionHandler(ToolHandler):
    """Function tool; ``execute`` receives the parsed arguments as keywords."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}
    strict: bool = False

    @property
    def declaration(self) -> FunctionTool:
        return FunctionTool(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            strict=self.strict,
        )

    @abstractmethod
    async def execute(self, **kwargs: Any) -> ToolResult | str | Any:
        """Run the function.

        Returns:
            A ToolResult, a string used verbatim, or any JSON-serializable value
        """
        pass


class LocalShellHandler(ToolHandler):
    @property
    def declaration(self) -> LocalShellTool:
        return LocalShellTool()

    @abstractmethod
    async def execute(self, action: LocalShellAction) -> ToolResult | str:
        pass


class ComputerUseHandler(ToolHandler):
    """Performs computer-use actions and answers with a screenshot."""

    def __init__(self, display_width: int, display_height: int, environment: str = "browser"):
        self._declaration = ComputerUseTool(
            display_width=display_width,
            display_height=display_height,
            environment=environment,
        )

    @property
    def declaration(self) -> ComputerUseTool:
        return self._declaration

    @abstractmethod
    async def execute(self, action: ComputerAction, call: ComputerCall) -> ComputerScreenshot:
        pass

    def acknowledge_safety_checks(self, call: ComputerCall) -> list[SafetyCheck]:
        """Safety checks to acknowledge in the output; all pending ones by default."""
        return list(call.pending_safety_checks)


class McpHandler(ToolHandler):
    """Remote MCP server; answers approval requests for its server label."""

    def __init__(self, declaration: McpTool):
        self._declaration = declaration

    @property
    def declaration(self) -> McpTool:
        return self._declaration

    async def approve(self, request: McpApprovalRequest) -> bool | tuple[bool, str | None]:
        """Decide an approval request; denies unless overridden."""
        return False, "no approval policy configured"


class ImageGenerationHandler(ToolHandler):
    def __init__(self, declaration: ImageGenerationTool | None = None):
        self._declaration = declaration or ImageGenerationTool()

    @property
    def declaration(self) -> ImageGenerationTool:
        return self._declaration


class CodeInterpreterHandler(ToolHandler):
    def __init__(self, declaration: CodeInterpreterTool | None = None):
        self._declaration = declaration or CodeInterpreterTool()

    @property
    def declaration(self) -> CodeInterpreterTool:
        return self._declaration


class WebSearchHandler(ToolHandler):
    def __init__(self, declaration: WebSearchTool | None = None):
        self._declaration = declaration or WebSearchTool()

    @property
    def declaration(self) -> WebSearchTool:
        return self._declaration


class ToolRegistry:
    """Registry for managing tool handlers."""

    def __init__(self, handlers: list[ToolHandler] | None = None):
        self._handlers: dict[str, ToolHandler] = {}
        for handler in handlers or []:
            self.register(handler)

    def register(self, handler: ToolHandler) -> None:
        """Register a handler.

        Raises:
            DuplicateToolError if a handler with the same key exists
        """
        key = handler.key
        if not key:
            raise ValueError("Tool must have a name")
        if key in self._handlers:
            raise DuplicateToolError(key)

        log.debug("Registering tool", tool=key)
        self._handlers[key] = handler

    def unregister(self, key: str) -> None:
        if key not in self._handlers:
            raise ToolNotFoundError(key)
        del self._handlers[key]

    def has_tool(self, key: str) -> bool:
        """Return whether a tool key is currently registered."""
        return key in self._handlers

    def get(self, key: str) -> ToolHandler:
        """Get a handler by key.

        Raises:
            ToolNotFoundError if not found
        """
        if key not in self._handlers:
            raise ToolNotFoundError(key)
        return self._handlers[key]

    def find(self, key: str | None) -> ToolHandler | None:
        if key is None:
            return None
        return self._handlers.get(key)

    def list_tools(self) -> list[str]:
        return list(self._handlers)

    def handlers(self) -> list[ToolHandler]:
        return list(self._handlers.values())

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions in registration order."""
        return [handler.get_definition() for handler in self._handlers.values()]

    def snapshot(self) -> "ToolRegistry":
        """Copy of the registry; later registrations do not affect it."""
        return ToolRegistry(self.handlers())

    def validate_tool_choice(self, choice: ToolChoice | None) -> None:
        """Check that a tool choice can be satisfied by registered handlers.

        Raises:
            UnknownToolChoiceError if the choice names an unregistered tool
            ConfigurationError if tools are required but none are registered
        """
        if choice is None:
            return
        if isinstance(choice, ToolChoiceMode):
            if choice.mode == "required" and not self._handlers:
                raise ConfigurationError("Tool choice 'required' with no registered tools")
            return
        key = choice.key
        if key is not None and key not in self._handlers:
            raise UnknownToolChoiceError(key)

    async def notify(self, event: ResponseEvent) -> None:
        """Fan an event out to every handler; observer failures are logged."""
        for key, handler in list(self._handlers.items()):
            try:
                await handler.on_event(event)
            except Exception as e:
                log.warning(
                    "Tool observer failed",
                    tool=key,
                    event=type(event).__name__,
                    error=str(e),
                )
