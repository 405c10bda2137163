import base64
from pathlib import Path

import pytest

from roundtrip.tools import FunctionToolDelegate, ImageFileSink, McpAutoApprover
from roundtrip.types import (
    ImageGenerationCall,
    ImageGenerationTool,
    ImagePartial,
    McpApprovalRequest,
    McpTool,
)


def multiply(x: int, y: int) -> int:
    """Multiply two integers.

    Longer explanation that is not part of the description.
    """
    return x * y


@pytest.mark.asyncio
async def test_delegate_runs_sync_callable():
    delegate = FunctionToolDelegate("multiply", multiply)

    assert delegate.description == "Multiply two integers."
    assert delegate.declaration.key == "multiply"
    assert await delegate.execute(x=3, y=4) == 12


@pytest.mark.asyncio
async def test_delegate_awaits_async_callable():
    async def greet(name: str) -> str:
        return f"hello {name}"

    delegate = FunctionToolDelegate(
        "greet",
        greet,
        description="Greets",
        parameters={"type": "object", "properties": {"name": {"type": "string"}}, "required": ["name"]},
    )

    assert await delegate.execute(name="ana") == "hello ana"
    assert delegate.get_definition()["parameters"]["required"] == ["name"]


@pytest.mark.asyncio
async def test_image_sink_records_partials_and_writes_final_image(tmp_path: Path):
    payload = bytes(range(256)) * 64
    encoded = base64.b64encode(payload).decode("ascii")
    sink = ImageFileSink(ImageGenerationTool(partial_images=1, output_format="png"), output_dir=tmp_path)
    partial = ImagePartial(
        sequence_number=3,
        output_index=0,
        item_id="ig_1",
        partial_image_b64=encoded[:64],
        partial_image_index=0,
    )

    await sink.on_event(partial)
    await sink.on_call(ImageGenerationCall(id="ig_1", status="completed", result=encoded))

    assert sink.partials == [partial]
    assert sink.images["ig_1"] == payload
    assert sink.saved_paths["ig_1"] == tmp_path / "ig_1.png"
    assert (tmp_path / "ig_1.png").read_bytes() == payload


@pytest.mark.asyncio
async def test_image_sink_ignores_invalid_base64(tmp_path: Path):
    sink = ImageFileSink(output_dir=tmp_path)

    await sink.on_call(ImageGenerationCall(id="ig_1", status="completed", result="not base64!"))

    assert sink.images == {}
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_image_sink_without_output_dir_keeps_bytes_in_memory():
    sink = ImageFileSink()

    await sink.on_call(ImageGenerationCall(id="ig_2", status="completed", result=base64.b64encode(b"png").decode()))

    assert sink.images == {"ig_2": b"png"}
    assert sink.saved_paths == {}


@pytest.mark.asyncio
async def test_mcp_auto_approver_uses_glob_allow_list():
    approver = McpAutoApprover(
        McpTool(server_label="dice", server_url="https://dmcp.example/sse", require_approval="always"),
        allowed=["roll", "list_*"],
    )

    def request(name: str) -> McpApprovalRequest:
        return McpApprovalRequest(id=f"mcpr_{name}", name=name, arguments="{}", server_label="dice")

    assert await approver.approve(request("roll")) == (True, None)
    assert (await approver.approve(request("list_dice")))[0] is True
    approved, reason = await approver.approve(request("wipe"))
    assert approved is False
    assert "wipe" in reason
    assert approver.key == "mcp:dice"
