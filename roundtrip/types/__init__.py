"""Wire data model for the responses API."""

from roundtrip.types.events import (
    ImagePartial,
    OutputItemAdded,
    OutputItemDelta,
    OutputItemDone,
    ResponseCompleted,
    ResponseError,
    ResponseEvent,
    is_terminal,
)
from roundtrip.types.items import (
    ComputerAction,
    ComputerCall,
    ComputerCallOutput,
    ComputerScreenshot,
    CodeInterpreterCall,
    FileSearchCall,
    FunctionCall,
    FunctionCallOutput,
    ImageGenerationCall,
    InputImageContent,
    InputMessage,
    InputText,
    InputTextContent,
    ItemReference,
    LocalShellAction,
    LocalShellCall,
    LocalShellCallOutput,
    McpApprovalRequest,
    McpApprovalResponse,
    McpCall,
    McpListTools,
    OtherItem,
    OutputMessage,
    OutputTextContent,
    Reasoning,
    RefusalContent,
    ResponseItem,
    SafetyCheck,
    WebSearchCall,
    parse_item,
)
from roundtrip.types.response import ErrorDetails, Response
from roundtrip.types.tools import (
    CodeInterpreterTool,
    ComputerUseTool,
    FunctionTool,
    ImageGenerationTool,
    LocalShellTool,
    McpTool,
    ToolChoice,
    ToolChoiceFunction,
    ToolChoiceHosted,
    ToolChoiceMcp,
    ToolChoiceMode,
    ToolDeclaration,
    WebSearchTool,
)

__all__ = [
    "CodeInterpreterCall",
    "CodeInterpreterTool",
    "ComputerAction",
    "ComputerCall",
    "ComputerCallOutput",
    "ComputerScreenshot",
    "ComputerUseTool",
    "ErrorDetails",
    "FileSearchCall",
    "FunctionCall",
    "FunctionCallOutput",
    "FunctionTool",
    "ImageGenerationCall",
    "ImageGenerationTool",
    "ImagePartial",
    "InputImageContent",
    "InputMessage",
    "InputText",
    "InputTextContent",
    "ItemReference",
    "LocalShellAction",
    "LocalShellCall",
    "LocalShellCallOutput",
    "LocalShellTool",
    "McpApprovalRequest",
    "McpApprovalResponse",
    "McpCall",
    "McpListTools",
    "McpTool",
    "OtherItem",
    "OutputItemAdded",
    "OutputItemDelta",
    "OutputItemDone",
    "OutputMessage",
    "OutputTextContent",
    "Reasoning",
    "RefusalContent",
    "Response",
    "ResponseCompleted",
    "ResponseError",
    "ResponseEvent",
    "ResponseItem",
    "SafetyCheck",
    "ToolChoice",
    "ToolChoiceFunction",
    "ToolChoiceHosted",
    "ToolChoiceMcp",
    "ToolChoiceMode",
    "ToolDeclaration",
    "WebSearchCall",
    "WebSearchTool",
    "is_terminal",
    "parse_item",
]
