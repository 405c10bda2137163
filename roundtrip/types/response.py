"""Terminal response snapshot."""

from dataclasses import dataclass, field
from typing import Any

from roundtrip.types.items import OutputMessage, ResponseItem, parse_item


@dataclass
class ErrorDetails:
    """Error reported by the remote API."""

    code: str | None = None
    message: str = ""
    param: str | None = None

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> "ErrorDetails":
        data = data or {}
        return cls(
            code=data.get("code") or data.get("type"),
            message=str(data.get("message") or ""),
            param=data.get("param"),
        )

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"message": self.message}
        if self.code is not None:
            data["code"] = self.code
        if self.param is not None:
            data["param"] = self.param
        return data


@dataclass
class Response:
    """One round's finalized response."""

    id: str
    status: str
    output: list[ResponseItem] = field(default_factory=list)
    error: ErrorDetails | None = None
    model: str | None = None
    usage: dict[str, Any] | None = None
    previous_response_id: str | None = None
    incomplete_details: dict[str, Any] | None = None
    created_at: float | None = None

    @property
    def output_text(self) -> str | None:
        """Concatenated text of all output messages, or None when empty."""
        text = "".join(item.text for item in self.output if isinstance(item, OutputMessage))
        return text or None

    @property
    def tool_calls(self) -> list[ResponseItem]:
        """Client-executed call items in output order."""
        return [item for item in self.output if item.requires_output]

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Response":
        error = data.get("error")
        return cls(
            id=str(data.get("id") or ""),
            status=str(data.get("status") or "completed"),
            output=[parse_item(item) for item in data.get("output") or []],
            error=ErrorDetails.from_json(error) if error else None,
            model=data.get("model"),
            usage=data.get("usage"),
            previous_response_id=data.get("previous_response_id"),
            incomplete_details=data.get("incomplete_details"),
            created_at=data.get("created_at"),
        )

    def to_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "object": "response",
            "status": self.status,
            "output": [item.to_json() for item in self.output],
        }
        if self.error is not None:
            data["error"] = self.error.to_json()
        if self.model is not None:
            data["model"] = self.model
        if self.usage is not None:
            data["usage"] = self.usage
        if self.previous_response_id is not None:
            data["previous_response_id"] = self.previous_response_id
        if self.incomplete_details is not None:
            data["incomplete_details"] = self.incomplete_details
        if self.created_at is not None:
            data["created_at"] = self.created_at
        return data
