import asyncio

import pytest
from structlog.testing import capture_logs

from roundtrip.dispatch import DispatchEngine, format_result, pending_calls
from roundtrip.tools import (
    ComputerUseHandler,
    FunctionToolDelegate,
    ImageGenerationHandler,
    LocalShellHandler,
    McpAutoApprover,
    ToolRegistry,
    ToolResult,
)
from roundtrip.types import (
    ComputerAction,
    ComputerCall,
    ComputerScreenshot,
    FunctionCall,
    ImageGenerationCall,
    LocalShellAction,
    LocalShellCall,
    McpApprovalRequest,
    McpTool,
    SafetyCheck,
)


class EchoShell(LocalShellHandler):
    def __init__(self):
        self.actions = []

    async def execute(self, action):
        self.actions.append(action)
        return ToolResult(success=True, content=" ".join(action.command))


class FakeComputer(ComputerUseHandler):
    def __init__(self):
        super().__init__(display_width=1024, display_height=768)
        self.actions = []

    async def execute(self, action, call):
        self.actions.append(action.type)
        return ComputerScreenshot(image_url="data:image/png;base64,AAAA")


class ImageObserver(ImageGenerationHandler):
    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.seen = []

    async def on_call(self, item):
        if self.fail:
            raise RuntimeError("observer broke")
        self.seen.append(item.id)


def add_two_ints(a: int, b: int) -> dict:
    return {"result": a + b}


def _call(call_id: str, name: str = "add_two_ints", arguments: str = '{"a":2,"b":3}') -> FunctionCall:
    return FunctionCall(call_id=call_id, name=name, arguments=arguments)


@pytest.mark.asyncio
async def test_function_result_is_compact_json():
    engine = DispatchEngine(ToolRegistry([FunctionToolDelegate("add_two_ints", add_two_ints)]))

    result = await engine.dispatch([_call("c1")])

    assert result.complete is True
    assert [output.to_json() for output in result.outputs] == [
        {"type": "function_call_output", "call_id": "c1", "output": '{"result":5}', "status": "completed"}
    ]


@pytest.mark.asyncio
async def test_invalid_arguments_yield_failed_output_and_continue():
    engine = DispatchEngine(ToolRegistry([FunctionToolDelegate("add_two_ints", add_two_ints)]))

    result = await engine.dispatch([_call("c1", arguments='{"a": 1'), _call("c2")])

    assert [output.status for output in result.outputs] == ["failed", "completed"]
    assert "Invalid arguments for 'add_two_ints'" in result.outputs[0].output


@pytest.mark.asyncio
async def test_handler_exception_yields_failed_output():
    def explode(**kwargs):
        raise RuntimeError("kaboom")

    engine = DispatchEngine(ToolRegistry([FunctionToolDelegate("explode", explode)]))

    result = await engine.dispatch([_call("c1", name="explode", arguments="{}")])

    assert result.outputs[0].status == "failed"
    assert "kaboom" in result.outputs[0].output


@pytest.mark.asyncio
async def test_handler_timeout_yields_failed_output():
    cancelled = []

    async def slow():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    engine = DispatchEngine(ToolRegistry([FunctionToolDelegate("slow", slow, timeout_seconds=0.05)]))

    result = await engine.dispatch([_call("c1", name="slow", arguments="")])

    assert result.outputs[0].status == "failed"
    assert "timed out" in result.outputs[0].output
    assert cancelled == [True]


@pytest.mark.asyncio
async def test_unhandled_calls_are_reported_not_fabricated():
    engine = DispatchEngine(ToolRegistry([FunctionToolDelegate("add_two_ints", add_two_ints)]))

    result = await engine.dispatch([_call("c1"), _call("c2", name="unknown")])

    assert result.complete is False
    assert [call.call_id for call in result.unhandled] == ["c2"]
    assert [output.call_id for output in result.outputs] == ["c1"]


@pytest.mark.asyncio
async def test_parallel_outputs_keep_call_order():
    async def wait_then_echo(delay: float, tag: str):
        await asyncio.sleep(delay)
        return tag

    engine = DispatchEngine(
        ToolRegistry([FunctionToolDelegate("echo", wait_then_echo)]),
        parallel=True,
    )
    calls = [
        _call("c1", name="echo", arguments='{"delay": 0.05, "tag": "first"}'),
        _call("c2", name="echo", arguments='{"delay": 0.0, "tag": "second"}'),
    ]

    result = await engine.dispatch(calls)

    assert [output.output for output in result.outputs] == ["first", "second"]


@pytest.mark.asyncio
async def test_answered_calls_are_skipped():
    engine = DispatchEngine(ToolRegistry([FunctionToolDelegate("add_two_ints", add_two_ints)]))

    result = await engine.dispatch([_call("c1"), _call("c2")], answered={"c1"})

    assert [output.call_id for output in result.outputs] == ["c2"]
    assert [call.call_id for call in pending_calls([_call("c1"), _call("c2")], {"c2"})] == ["c1"]


@pytest.mark.asyncio
async def test_shell_computer_and_mcp_calls_use_their_contracts():
    shell = EchoShell()
    computer = FakeComputer()
    approver = McpAutoApprover(McpTool(server_label="dice", server_url="https://dmcp.example/sse"), allowed=["roll*"])
    engine = DispatchEngine(ToolRegistry([shell, computer, approver]))
    output = [
        LocalShellCall(id="ls_1", call_id="call_ls", action=LocalShellAction(command=["echo", "hi"])),
        ComputerCall(
            id="cu_1",
            call_id="call_cu",
            action=ComputerAction(type="screenshot"),
            pending_safety_checks=[SafetyCheck(id="sc_1")],
        ),
        McpApprovalRequest(id="mcpr_1", name="roll", arguments="{}", server_label="dice"),
        McpApprovalRequest(id="mcpr_2", name="delete_everything", arguments="{}", server_label="dice"),
    ]

    result = await engine.dispatch(output)

    shell_out, computer_out, approve_out, deny_out = result.outputs
    assert shell_out.output == "echo hi"
    assert shell_out.status == "completed"
    assert computer_out.output.image_url == "data:image/png;base64,AAAA"
    assert [check.id for check in computer_out.acknowledged_safety_checks] == ["sc_1"]
    assert approve_out.approve is True
    assert approve_out.approval_request_id == "mcpr_1"
    assert deny_out.approve is False
    assert "allow-list" in deny_out.reason


@pytest.mark.asyncio
async def test_hosted_calls_notify_observers_and_need_no_output():
    observer = ImageObserver()
    engine = DispatchEngine(ToolRegistry([observer]))

    result = await engine.dispatch([ImageGenerationCall(id="ig_1", status="completed", result="AAAA")])

    assert observer.seen == ["ig_1"]
    assert result.outputs == []
    assert result.complete is True


@pytest.mark.asyncio
async def test_observer_failure_is_not_fatal():
    engine = DispatchEngine(ToolRegistry([ImageObserver(fail=True)]))

    result = await engine.dispatch([ImageGenerationCall(id="ig_1", status="completed")])

    assert result.complete is True


def test_format_result_variants():
    assert format_result("plain") == ("plain", True)
    assert format_result({"a": [1, 2]}) == ('{"a":[1,2]}', True)
    assert format_result(ToolResult(success=False, content="bad exit")) == ("bad exit", False)


@pytest.mark.asyncio
async def test_failed_computer_call_logs_error_and_sends_empty_screenshot():
    class BrokenComputer(FakeComputer):
        async def execute(self, action, call):
            raise RuntimeError("display unavailable")

    engine = DispatchEngine(ToolRegistry([BrokenComputer()]))
    call = ComputerCall(id="cu_1", call_id="call_cu", action=ComputerAction(type="click"))

    with capture_logs() as logs:
        result = await engine.dispatch([call])

    [output] = result.outputs
    assert output.status == "failed"
    assert output.output == ComputerScreenshot()
    [entry] = [entry for entry in logs if entry["event"] == "Computer call failed"]
    assert entry["call_id"] == "call_cu"
    assert "display unavailable" in entry["error"]
