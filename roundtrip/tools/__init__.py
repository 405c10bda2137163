"""Tool handlers for roundtrip."""

from roundtrip.tools.function import FunctionToolDelegate
from roundtrip.tools.image import ImageFileSink
from roundtrip.tools.mcp import McpAutoApprover
from roundtrip.tools.registry import (
    CodeInterpreterHandler,
    ComputerUseHandler,
    FunctionHandler,
    ImageGenerationHandler,
    LocalShellHandler,
    McpHandler,
    ToolHandler,
    ToolRegistry,
    ToolResult,
    WebSearchHandler,
)
from roundtrip.tools.shell import SubprocessShellHandler

__all__ = [
    "CodeInterpreterHandler",
    "ComputerUseHandler",
    "FunctionHandler",
    "FunctionToolDelegate",
    "ImageFileSink",
    "ImageGenerationHandler",
    "LocalShellHandler",
    "McpAutoApprover",
    "McpHandler",
    "SubprocessShellHandler",
    "ToolHandler",
    "ToolRegistry",
    "ToolResult",
    "WebSearchHandler",
]
