"""Response items: messages, tool calls and tool outputs."""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar


# ---------------------------------------------------------------------------
# Content parts
# ---------------------------------------------------------------------------


@dataclass
class InputTextContent:
    text: str

    def to_json(self) -> dict[str, Any]:
        return {"type": "input_text", "text": self.text}


@dataclass
class InputImageContent:
    image_url: str | None = None
    file_id: str | None = None
    detail: str = "auto"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "input_image", "detail": self.detail}
        if self.image_url is not None:
            data["image_url"] = self.image_url
        if self.file_id is not None:
            data["file_id"] = self.file_id
        return data


@dataclass
class OutputTextContent:
    text: str
    annotations: list[dict[str, Any]] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {"type": "output_text", "text": self.text, "annotations": list(self.annotations)}


@dataclass
class RefusalContent:
    refusal: str

    def to_json(self) -> dict[str, Any]:
        return {"type": "refusal", "refusal": self.refusal}


@dataclass
class OtherContent:
    raw: dict[str, Any]

    def to_json(self) -> dict[str, Any]:
        return dict(self.raw)


ContentPart = InputTextContent | InputImageContent | OutputTextContent | RefusalContent | OtherContent


def parse_content(data: dict[str, Any]) -> ContentPart:
    """Parse one content part from wire JSON."""
    kind = data.get("type")
    if kind == "input_text":
        return InputTextContent(text=data.get("text", ""))
    if kind == "input_image":
        return InputImageContent(
            image_url=data.get("image_url"),
            file_id=data.get("file_id"),
            detail=data.get("detail") or "auto",
        )
    if kind == "output_text":
        return OutputTextContent(text=data.get("text", ""), annotations=list(data.get("annotations") or []))
    if kind == "refusal":
        return RefusalContent(refusal=data.get("refusal", ""))
    return OtherContent(raw=dict(data))


# ---------------------------------------------------------------------------
# Nested payloads
# ---------------------------------------------------------------------------


@dataclass
class LocalShellAction:
    """Command requested by a local_shell_call."""

    command: list[str]
    env: dict[str, str] = field(default_factory=dict)
    timeout_ms: int | None = None
    user: str | None = None
    working_directory: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "LocalShellAction":
        return cls(
            command=[str(part) for part in data.get("command") or []],
            env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
            timeout_ms=data.get("timeout_ms"),
            user=data.get("user"),
            working_directory=data.get("working_directory"),
        )

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "exec", "command": list(self.command), "env": dict(self.env)}
        if self.timeout_ms is not None:
            data["timeout_ms"] = self.timeout_ms
        if self.user is not None:
            data["user"] = self.user
        if self.working_directory is not None:
            data["working_directory"] = self.working_directory
        return data


@dataclass
class ComputerAction:
    """A computer-use action (click, type, scroll, screenshot, ...)."""

    type: str
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "ComputerAction":
        params = {k: v for k, v in data.items() if k != "type"}
        return cls(type=str(data.get("type", "")), params=params)

    def to_json(self) -> dict[str, Any]:
        return {"type": self.type, **self.params}


@dataclass
class SafetyCheck:
    id: str
    code: str | None = None
    message: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "SafetyCheck":
        return cls(id=data["id"], code=data.get("code"), message=data.get("message"))

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id}
        if self.code is not None:
            data["code"] = self.code
        if self.message is not None:
            data["message"] = self.message
        return data


@dataclass
class ComputerScreenshot:
    """Screenshot reference returned for a computer call."""

    image_url: str | None = None
    file_id: str | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "computer_screenshot"}
        if self.image_url is not None:
            data["image_url"] = self.image_url
        if self.file_id is not None:
            data["file_id"] = self.file_id
        return data


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class ResponseItem:
    """Base class for every input/output item."""

    type: ClassVar[str] = ""
    # Client must answer this item with a tool output before the next round.
    requires_output: ClassVar[bool] = False
    # Item is a tool call executed remotely; handlers only observe it.
    hosted_call: ClassVar[bool] = False

    # Call items (requires_output or hosted_call) also expose `call_id` and `tool_key`.

    def to_json(self) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class InputText(ResponseItem):
    """Message with plain string content."""

    type: ClassVar[str] = "message"

    role: str
    text: str

    def to_json(self) -> dict[str, Any]:
        return {"type": "message", "role": self.role, "content": self.text}


@dataclass
class InputMessage(ResponseItem):
    type: ClassVar[str] = "message"

    role: str
    content: list[ContentPart]

    def to_json(self) -> dict[str, Any]:
        return {"type": "message", "role": self.role, "content": [part.to_json() for part in self.content]}


@dataclass
class OutputMessage(ResponseItem):
    type: ClassVar[str] = "message"

    id: str
    content: list[ContentPart] = field(default_factory=list)
    role: str = "assistant"
    status: str | None = None

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content if isinstance(part, OutputTextContent))

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "message",
            "id": self.id,
            "role": self.role,
            "content": [part.to_json() for part in self.content],
        }
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class FunctionCallOutput(ResponseItem):
    type: ClassVar[str] = "function_call_output"

    call_id: str
    output: str | list[ContentPart]
    status: str | None = None
    id: str | None = None

    def to_json(self) -> dict[str, Any]:
        output: Any = self.output
        if isinstance(output, list):
            output = [part.to_json() for part in output]
        data: dict[str, Any] = {"type": "function_call_output", "call_id": self.call_id, "output": output}
        if self.id is not None:
            data["id"] = self.id
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class FunctionCall(ResponseItem):
    type: ClassVar[str] = "function_call"
    requires_output: ClassVar[bool] = True

    call_id: str
    name: str
    arguments: str = ""
    id: str | None = None
    status: str | None = None

    @property
    def tool_key(self) -> str:
        return self.name

    def decode_arguments(self) -> dict[str, Any]:
        """Parse the accumulated argument string; empty means no arguments."""
        if not self.arguments.strip():
            return {}
        decoded = json.loads(self.arguments)
        if not isinstance(decoded, dict):
            raise ValueError(f"expected a JSON object, got {type(decoded).__name__}")
        return decoded

    def output(self, output: str | list[ContentPart], status: str = "completed") -> FunctionCallOutput:
        return FunctionCallOutput(call_id=self.call_id, output=output, status=status)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "function_call",
            "call_id": self.call_id,
            "name": self.name,
            "arguments": self.arguments,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class LocalShellCallOutput(ResponseItem):
    type: ClassVar[str] = "local_shell_call_output"

    call_id: str
    output: str
    status: str | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "local_shell_call_output", "call_id": self.call_id, "output": self.output}
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class LocalShellCall(ResponseItem):
    type: ClassVar[str] = "local_shell_call"
    requires_output: ClassVar[bool] = True

    id: str
    call_id: str
    action: LocalShellAction
    status: str | None = None

    @property
    def tool_key(self) -> str:
        return "local_shell"

    def output(self, output: str, status: str = "completed") -> LocalShellCallOutput:
        return LocalShellCallOutput(call_id=self.call_id, output=output, status=status)

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "local_shell_call",
            "id": self.id,
            "call_id": self.call_id,
            "action": self.action.to_json(),
        }
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class ComputerCallOutput(ResponseItem):
    type: ClassVar[str] = "computer_call_output"

    call_id: str
    output: ComputerScreenshot
    acknowledged_safety_checks: list[SafetyCheck] | None = None
    status: str | None = None
    id: str | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "computer_call_output",
            "call_id": self.call_id,
            "output": self.output.to_json(),
        }
        if self.acknowledged_safety_checks is not None:
            data["acknowledged_safety_checks"] = [check.to_json() for check in self.acknowledged_safety_checks]
        if self.id is not None:
            data["id"] = self.id
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class ComputerCall(ResponseItem):
    type: ClassVar[str] = "computer_call"
    requires_output: ClassVar[bool] = True

    id: str
    call_id: str
    action: ComputerAction
    pending_safety_checks: list[SafetyCheck] = field(default_factory=list)
    status: str | None = None

    @property
    def tool_key(self) -> str:
        return "computer_use_preview"

    def output(
        self,
        screenshot: ComputerScreenshot,
        acknowledged_safety_checks: list[SafetyCheck] | None = None,
        status: str | None = None,
    ) -> ComputerCallOutput:
        return ComputerCallOutput(
            call_id=self.call_id,
            output=screenshot,
            acknowledged_safety_checks=acknowledged_safety_checks,
            status=status,
        )

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "computer_call",
            "id": self.id,
            "call_id": self.call_id,
            "action": self.action.to_json(),
            "pending_safety_checks": [check.to_json() for check in self.pending_safety_checks],
        }
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class McpApprovalResponse(ResponseItem):
    type: ClassVar[str] = "mcp_approval_response"

    approval_request_id: str
    approve: bool
    reason: str | None = None
    id: str | None = None

    @property
    def call_id(self) -> str:
        return self.approval_request_id

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "mcp_approval_response",
            "approval_request_id": self.approval_request_id,
            "approve": self.approve,
        }
        if self.id is not None:
            data["id"] = self.id
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass
class McpApprovalRequest(ResponseItem):
    type: ClassVar[str] = "mcp_approval_request"
    requires_output: ClassVar[bool] = True

    id: str
    name: str
    arguments: str
    server_label: str

    @property
    def call_id(self) -> str:
        return self.id

    @property
    def tool_key(self) -> str:
        return f"mcp:{self.server_label}"

    def output(self, approve: bool, reason: str | None = None) -> McpApprovalResponse:
        return McpApprovalResponse(approval_request_id=self.id, approve=approve, reason=reason)

    def to_json(self) -> dict[str, Any]:
        return {
            "type": "mcp_approval_request",
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "server_label": self.server_label,
        }


class _HostedCall(ResponseItem):
    """Tool call executed by the remote service."""

    hosted_call: ClassVar[bool] = True

    @property
    def call_id(self) -> str:
        return self.id  # type: ignore[attr-defined]


@dataclass
class McpCall(_HostedCall):
    type: ClassVar[str] = "mcp_call"

    id: str
    name: str
    arguments: str
    server_label: str
    output: str | None = None
    error: str | None = None

    @property
    def tool_key(self) -> str:
        return f"mcp:{self.server_label}"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "mcp_call",
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments,
            "server_label": self.server_label,
        }
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class McpListTools(_HostedCall):
    type: ClassVar[str] = "mcp_list_tools"

    id: str
    server_label: str
    tools: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def tool_key(self) -> str:
        return f"mcp:{self.server_label}"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "mcp_list_tools",
            "id": self.id,
            "server_label": self.server_label,
            "tools": list(self.tools),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class ImageGenerationCall(_HostedCall):
    type: ClassVar[str] = "image_generation_call"

    id: str
    status: str
    result: str | None = None

    @property
    def tool_key(self) -> str:
        return "image_generation"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "image_generation_call", "id": self.id, "status": self.status}
        if self.result is not None:
            data["result"] = self.result
        return data


@dataclass
class WebSearchCall(_HostedCall):
    type: ClassVar[str] = "web_search_call"

    id: str
    status: str
    action: dict[str, Any] | None = None

    @property
    def tool_key(self) -> str:
        return "web_search_preview"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": "web_search_call", "id": self.id, "status": self.status}
        if self.action is not None:
            data["action"] = dict(self.action)
        return data


@dataclass
class FileSearchCall(_HostedCall):
    type: ClassVar[str] = "file_search_call"

    id: str
    status: str
    queries: list[str] = field(default_factory=list)
    results: list[dict[str, Any]] | None = None

    @property
    def tool_key(self) -> str:
        return "file_search"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "file_search_call",
            "id": self.id,
            "status": self.status,
            "queries": list(self.queries),
        }
        if self.results is not None:
            data["results"] = list(self.results)
        return data


@dataclass
class CodeInterpreterCall(_HostedCall):
    type: ClassVar[str] = "code_interpreter_call"

    id: str
    status: str
    code: str = ""
    container_id: str | None = None
    outputs: list[dict[str, Any]] | None = None

    @property
    def tool_key(self) -> str:
        return "code_interpreter"

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "code_interpreter_call",
            "id": self.id,
            "status": self.status,
            "code": self.code,
        }
        if self.container_id is not None:
            data["container_id"] = self.container_id
        if self.outputs is not None:
            data["outputs"] = list(self.outputs)
        return data


@dataclass
class Reasoning(ResponseItem):
    type: ClassVar[str] = "reasoning"

    id: str
    summary: list[str] = field(default_factory=list)
    encrypted_content: str | None = None
    status: str | None = None

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": "reasoning",
            "id": self.id,
            "summary": [{"type": "summary_text", "text": text} for text in self.summary],
        }
        if self.encrypted_content is not None:
            data["encrypted_content"] = self.encrypted_content
        if self.status is not None:
            data["status"] = self.status
        return data


@dataclass
class ItemReference(ResponseItem):
    type: ClassVar[str] = "item_reference"

    id: str

    def to_json(self) -> dict[str, Any]:
        return {"type": "item_reference", "id": self.id}


@dataclass
class OtherItem(ResponseItem):
    """Item of a type this library does not model; kept verbatim."""

    raw: dict[str, Any]

    def to_json(self) -> dict[str, Any]:
        return dict(self.raw)


def parse_item(data: dict[str, Any]) -> ResponseItem:
    """Parse one item from wire JSON."""
    kind = data.get("type", "message" if "role" in data else None)

    if kind == "message":
        content = data.get("content")
        if isinstance(content, str):
            return InputText(role=data.get("role", "user"), text=content)
        parts = [parse_content(part) for part in content or []]
        if "id" in data and data.get("role", "assistant") == "assistant":
            return OutputMessage(
                id=data["id"],
                content=parts,
                role=data.get("role", "assistant"),
                status=data.get("status"),
            )
        return InputMessage(role=data.get("role", "user"), content=parts)
    if kind == "function_call":
        return FunctionCall(
            call_id=data["call_id"],
            name=data["name"],
            arguments=data.get("arguments") or "",
            id=data.get("id"),
            status=data.get("status"),
        )
    if kind == "function_call_output":
        output = data.get("output", "")
        if isinstance(output, list):
            output = [parse_content(part) for part in output]
        return FunctionCallOutput(
            call_id=data["call_id"],
            output=output,
            status=data.get("status"),
            id=data.get("id"),
        )
    if kind == "local_shell_call":
        return LocalShellCall(
            id=data["id"],
            call_id=data.get("call_id") or data["id"],
            action=LocalShellAction.from_json(data.get("action") or {}),
            status=data.get("status"),
        )
    if kind == "local_shell_call_output":
        return LocalShellCallOutput(
            call_id=data.get("call_id") or data["id"],
            output=data.get("output", ""),
            status=data.get("status"),
        )
    if kind == "computer_call":
        return ComputerCall(
            id=data["id"],
            call_id=data["call_id"],
            action=ComputerAction.from_json(data.get("action") or {}),
            pending_safety_checks=[SafetyCheck.from_json(c) for c in data.get("pending_safety_checks") or []],
            status=data.get("status"),
        )
    if kind == "computer_call_output":
        raw_output = data.get("output") or {}
        acknowledged = data.get("acknowledged_safety_checks")
        return ComputerCallOutput(
            call_id=data["call_id"],
            output=ComputerScreenshot(image_url=raw_output.get("image_url"), file_id=raw_output.get("file_id")),
            acknowledged_safety_checks=(
                [SafetyCheck.from_json(c) for c in acknowledged] if acknowledged is not None else None
            ),
            status=data.get("status"),
            id=data.get("id"),
        )
    if kind == "mcp_approval_request":
        return McpApprovalRequest(
            id=data["id"],
            name=data.get("name", ""),
            arguments=data.get("arguments") or "",
            server_label=data.get("server_label", ""),
        )
    if kind == "mcp_approval_response":
        return McpApprovalResponse(
            approval_request_id=data["approval_request_id"],
            approve=bool(data.get("approve")),
            reason=data.get("reason"),
            id=data.get("id"),
        )
    if kind == "mcp_call":
        return McpCall(
            id=data["id"],
            name=data.get("name", ""),
            arguments=data.get("arguments") or "",
            server_label=data.get("server_label", ""),
            output=data.get("output"),
            error=data.get("error"),
        )
    if kind == "mcp_list_tools":
        return McpListTools(
            id=data["id"],
            server_label=data.get("server_label", ""),
            tools=list(data.get("tools") or []),
            error=data.get("error"),
        )
    if kind == "image_generation_call":
        return ImageGenerationCall(id=data["id"], status=data.get("status", ""), result=data.get("result"))
    if kind == "web_search_call":
        return WebSearchCall(id=data["id"], status=data.get("status", ""), action=data.get("action"))
    if kind == "file_search_call":
        return FileSearchCall(
            id=data["id"],
            status=data.get("status", ""),
            queries=list(data.get("queries") or []),
            results=data.get("results"),
        )
    if kind == "code_interpreter_call":
        return CodeInterpreterCall(
            id=data["id"],
            status=data.get("status", ""),
            code=data.get("code") or "",
            container_id=data.get("container_id"),
            outputs=data.get("outputs"),
        )
    if kind == "reasoning":
        return Reasoning(
            id=data["id"],
            summary=[str(part.get("text", "")) for part in data.get("summary") or []],
            encrypted_content=data.get("encrypted_content"),
            status=data.get("status"),
        )
    if kind == "item_reference":
        return ItemReference(id=data["id"])
    return OtherItem(raw=dict(data))
