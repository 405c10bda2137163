"""Match tool-call items to handlers, run them and package their outputs."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable

from roundtrip.config import get_config
from roundtrip.exceptions import HandlerExecutionError, InvalidArgumentsError, ToolBlockedError
from roundtrip.logging import get_logger
from roundtrip.tools.registry import (
    ComputerUseHandler,
    FunctionHandler,
    LocalShellHandler,
    McpHandler,
    ToolHandler,
    ToolRegistry,
    ToolResult,
)
from roundtrip.types.items import (
    ComputerCall,
    ComputerScreenshot,
    FunctionCall,
    LocalShellCall,
    McpApprovalRequest,
    ResponseItem,
)

log = get_logger(__name__)


@dataclass
class DispatchResult:
    """Outputs of one dispatch pass, in call order."""

    outputs: list[ResponseItem] = field(default_factory=list)
    unhandled: list[ResponseItem] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.unhandled


def format_result(result: Any) -> tuple[str, bool]:
    """Render a handler return value as output text and a success flag."""
    if isinstance(result, ToolResult):
        if result.success:
            return result.content, True
        return result.error or result.content, False
    if isinstance(result, str):
        return result, True
    return json.dumps(result, separators=(",", ":"), default=str), True


def pending_calls(output: list[ResponseItem], answered: set[str] | None = None) -> list[ResponseItem]:
    """Client-executed call items that have no output yet."""
    answered = answered or set()
    return [item for item in output if item.requires_output and item.call_id not in answered]  # type: ignore[attr-defined]


class DispatchEngine:
    """Runs the handlers for a response's pending tool calls."""

    def __init__(
        self,
        registry: ToolRegistry,
        parallel: bool | None = None,
        timeout_seconds: float | None = None,
    ):
        cfg = get_config()
        self.registry = registry
        self.parallel = cfg.session.parallel_dispatch if parallel is None else parallel
        self.timeout_seconds = float(timeout_seconds or cfg.tools.timeout_seconds)

    async def dispatch(self, output: list[ResponseItem], answered: set[str] | None = None) -> DispatchResult:
        """Run one dispatch pass over a response's output items.

        Hosted calls are only reported to their observers. Client calls
        without a handler end up in ``unhandled``; every other client call
        gets exactly one output, failed or completed.
        """
        await self.observe(output)

        result = DispatchResult()
        runnable: list[tuple[ToolHandler, ResponseItem]] = []
        for call in pending_calls(output, answered):
            handler = self.registry.find(call.tool_key)  # type: ignore[attr-defined]
            if handler is None:
                log.warning("No handler for tool call", tool=call.tool_key, call_id=call.call_id)  # type: ignore[attr-defined]
                result.unhandled.append(call)
                continue
            runnable.append((handler, call))

        if self.parallel and len(runnable) > 1:
            result.outputs = list(await asyncio.gather(*(self.invoke(h, c) for h, c in runnable)))
        else:
            for handler, call in runnable:
                result.outputs.append(await self.invoke(handler, call))
        return result

    async def observe(self, output: list[ResponseItem]) -> None:
        """Notify observers of hosted calls; failures are logged, never raised."""
        for item in output:
            if not item.hosted_call:
                continue
            handler = self.registry.find(item.tool_key)  # type: ignore[attr-defined]
            if handler is None:
                continue
            try:
                await handler.on_call(item)
            except Exception as e:
                log.warning("Tool observer failed", tool=handler.key, call_id=item.call_id, error=str(e))  # type: ignore[attr-defined]

    async def invoke(self, handler: ToolHandler, call: ResponseItem) -> ResponseItem:
        """Run one call and return its tool output item."""
        key = handler.key
        call_id = call.call_id  # type: ignore[attr-defined]
        log.info("Dispatching tool call", tool=key, call_id=call_id)
        try:
            output = await self._execute(handler, call)
        except (InvalidArgumentsError, HandlerExecutionError, ToolBlockedError) as e:
            log.warning("Tool call failed", tool=key, call_id=call_id, error=str(e))
            return self._failed_output(call, str(e))
        except Exception as e:
            error = HandlerExecutionError(key, str(e) or type(e).__name__)
            log.error("Tool execution failed", tool=key, call_id=call_id, error=str(e))
            return self._failed_output(call, str(error))
        log.info("Tool executed", tool=key, call_id=call_id, status=getattr(output, "status", None))
        return output

    async def _execute(self, handler: ToolHandler, call: ResponseItem) -> ResponseItem:
        key = handler.key
        timeout = handler.timeout_for(call) or self.timeout_seconds

        if isinstance(call, FunctionCall) and isinstance(handler, FunctionHandler):
            try:
                arguments = call.decode_arguments()
            except ValueError as e:
                raise InvalidArgumentsError(key, str(e)) from e
            text, success = format_result(await self._run(key, handler.execute(**arguments), timeout))
            return call.output(text, "completed" if success else "failed")

        if isinstance(call, LocalShellCall) and isinstance(handler, LocalShellHandler):
            text, success = format_result(await self._run(key, handler.execute(call.action), timeout))
            return call.output(text, "completed" if success else "failed")

        if isinstance(call, ComputerCall) and isinstance(handler, ComputerUseHandler):
            screenshot = await self._run(key, handler.execute(call.action, call), timeout)
            if not isinstance(screenshot, ComputerScreenshot):
                raise HandlerExecutionError(key, "Tool returned invalid result payload")
            return call.output(screenshot, handler.acknowledge_safety_checks(call), status="completed")

        if isinstance(call, McpApprovalRequest) and isinstance(handler, McpHandler):
            decision = await self._run(key, handler.approve(call), timeout)
            if isinstance(decision, tuple):
                approve, reason = decision
            else:
                approve, reason = decision, None
            return call.output(bool(approve), reason)

        raise HandlerExecutionError(key, f"{type(handler).__name__} cannot execute {call.type}")

    @staticmethod
    def _failed_output(call: ResponseItem, message: str) -> ResponseItem:
        if isinstance(call, McpApprovalRequest):
            return call.output(False, message)
        if isinstance(call, ComputerCall):
            # computer_call_output has no error field; the screenshot goes out empty
            log.warning("Computer call failed", call_id=call.call_id, action=call.action.type, error=message)
            return call.output(ComputerScreenshot(), status="failed")
        return call.output(message, "failed")  # type: ignore[attr-defined]

    async def _run(self, key: str, coro: Awaitable[Any], timeout: float) -> Any:
        """Await a handler coroutine under a deadline."""
        task = asyncio.ensure_future(coro)
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            await self._cancel_task(task)
            raise
        if task in done:
            return task.result()

        await self._cancel_task(task)
        timeout_label = int(timeout) if float(timeout).is_integer() else timeout
        raise HandlerExecutionError(key, f"Execution timed out after {timeout_label}s")

    @staticmethod
    async def _cancel_task(task: asyncio.Future[Any] | None) -> None:
        """Cancel task and await it to avoid pending task warnings."""
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.debug("Cancelled tool task raised", error=str(e))
