"""MCP approval handler driven by an allow-list."""

import fnmatch

from roundtrip.logging import get_logger
from roundtrip.tools.registry import McpHandler
from roundtrip.types.items import McpApprovalRequest, McpCall, ResponseItem
from roundtrip.types.tools import McpTool

log = get_logger(__name__)


class McpAutoApprover(McpHandler):
    """Approve MCP tool calls whose name matches an allowed glob pattern."""

    def __init__(self, declaration: McpTool, allowed: list[str] | None = None):
        super().__init__(declaration)
        self.allowed = [str(item).strip() for item in allowed or [] if str(item).strip()]

    def is_allowed(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self.allowed)

    async def approve(self, request: McpApprovalRequest) -> tuple[bool, str | None]:
        if self.is_allowed(request.name):
            log.info("Approving MCP call", server=request.server_label, tool=request.name)
            return True, None
        log.warning("Denying MCP call", server=request.server_label, tool=request.name)
        return False, f"tool '{request.name}' is not in the allow-list"

    async def on_call(self, item: ResponseItem) -> None:
        if isinstance(item, McpCall) and item.error:
            log.warning("MCP call failed remotely", server=item.server_label, tool=item.name, error=item.error)
