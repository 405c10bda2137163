"""Tool declarations and tool-choice constraints."""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal


class ToolDeclaration:
    """Wire declaration of a tool offered to the model."""

    type: ClassVar[str] = ""

    @property
    def key(self) -> str:
        """Registry key used to match call items against handlers."""
        return self.type

    def to_json(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class FunctionTool(ToolDeclaration):
    type: ClassVar[str] = "function"

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    strict: bool = False

    @property
    def key(self) -> str:
        return self.name

    def to_json(self) -> dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
            "strict": self.strict,
        }


@dataclass
class LocalShellTool(ToolDeclaration):
    type: ClassVar[str] = "local_shell"

    def to_json(self) -> dict[str, Any]:
        return {"type": "local_shell"}


@dataclass
class ImageGenerationTool(ToolDeclaration):
    type: ClassVar[str] = "image_generation"

    partial_images: int | None = None
    quality: str | None = None
    size: str | None = None
    background: str | None = None
    output_format: str | None = None
    model: str | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "image_generation"}
        for name in ("partial_images", "quality", "size", "background", "output_format", "model"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass
class ComputerUseTool(ToolDeclaration):
    type: ClassVar[str] = "computer_use_preview"

    display_width: int
    display_height: int
    environment: str = "browser"

    def to_json(self) -> dict[str, Any]:
        return {
            "type": "computer_use_preview",
            "display_width": self.display_width,
            "display_height": self.display_height,
            "environment": self.environment,
        }


@dataclass
class McpTool(ToolDeclaration):
    type: ClassVar[str] = "mcp"

    server_label: str
    server_url: str
    allowed_tools: list[str] | None = None
    headers: dict[str, str] | None = None
    require_approval: str | dict[str, Any] | None = None

    @property
    def key(self) -> str:
        return f"mcp:{self.server_label}"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "mcp",
            "server_label": self.server_label,
            "server_url": self.server_url,
        }
        if self.allowed_tools is not None:
            data["allowed_tools"] = list(self.allowed_tools)
        if self.headers is not None:
            data["headers"] = dict(self.headers)
        if self.require_approval is not None:
            data["require_approval"] = self.require_approval
        return data


@dataclass
class CodeInterpreterTool(ToolDeclaration):
    type: ClassVar[str] = "code_interpreter"

    container: str | dict[str, Any] = field(default_factory=lambda: {"type": "auto"})

    def to_json(self) -> dict[str, Any]:
        return {"type": "code_interpreter", "container": self.container}


@dataclass
class WebSearchTool(ToolDeclaration):
    type: ClassVar[str] = "web_search_preview"

    search_context_size: str | None = None
    user_location: dict[str, Any] | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "web_search_preview"}
        if self.search_context_size is not None:
            data["search_context_size"] = self.search_context_size
        if self.user_location is not None:
            data["user_location"] = dict(self.user_location)
        return data


# ---------------------------------------------------------------------------
# Tool choice
# ---------------------------------------------------------------------------


class ToolChoice:
    """Constraint on which tool the model may call."""

    @property
    def key(self) -> str | None:
        """Registry key the constraint references, if any."""
        return None

    def to_json(self) -> Any:
        raise NotImplementedError


@dataclass
class ToolChoiceMode(ToolChoice):
    mode: Literal["auto", "none", "required"] = "auto"

    def to_json(self) -> str:
        return self.mode


@dataclass
class ToolChoiceFunction(ToolChoice):
    name: str

    @property
    def key(self) -> str:
        return self.name

    def to_json(self) -> dict[str, Any]:
        return {"type": "function", "name": self.name}


@dataclass
class ToolChoiceHosted(ToolChoice):
    type: str

    @property
    def key(self) -> str:
        return self.type

    def to_json(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass
class ToolChoiceMcp(ToolChoice):
    server_label: str
    name: str | None = None

    @property
    def key(self) -> str:
        return f"mcp:{self.server_label}"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "mcp", "server_label": self.server_label}
        if self.name is not None:
            data["name"] = self.name
        return data
