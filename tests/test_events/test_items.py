import json

import pytest

from roundtrip.types import (
    ComputerCall,
    ComputerScreenshot,
    FunctionCall,
    InputText,
    LocalShellCall,
    McpApprovalRequest,
    OtherItem,
    Response,
    parse_item,
)


def test_unknown_item_types_are_preserved_verbatim():
    raw = {"type": "brand_new_call", "id": "x_1", "payload": {"k": [1, 2]}}

    item = parse_item(raw)

    assert isinstance(item, OtherItem)
    assert item.to_json() == raw


def test_function_call_output_constructor_carries_call_id():
    call = parse_item(
        {"type": "function_call", "id": "fc_1", "call_id": "c1", "name": "add_two_ints", "arguments": '{"a":2,"b":3}'}
    )

    output = call.output('{"result":5}')

    assert isinstance(call, FunctionCall)
    assert output.to_json() == {
        "type": "function_call_output",
        "call_id": "c1",
        "output": '{"result":5}',
        "status": "completed",
    }


def test_empty_arguments_decode_to_empty_dict():
    assert FunctionCall(call_id="c1", name="noop").decode_arguments() == {}


@pytest.mark.parametrize("arguments", ['{"a": 1', "[1, 2]"])
def test_bad_arguments_raise_value_error(arguments):
    with pytest.raises(ValueError):
        FunctionCall(call_id="c1", name="f", arguments=arguments).decode_arguments()


def test_local_shell_call_parses_action():
    call = parse_item(
        {
            "type": "local_shell_call",
            "id": "ls_1",
            "call_id": "call_ls",
            "status": "in_progress",
            "action": {
                "type": "exec",
                "command": ["ls", "-la"],
                "env": {"A": "1"},
                "timeout_ms": 5000,
                "working_directory": "/tmp",
            },
        }
    )

    assert isinstance(call, LocalShellCall)
    assert call.tool_key == "local_shell"
    assert call.action.command == ["ls", "-la"]
    assert call.action.timeout_ms == 5000
    assert call.output("done").to_json()["type"] == "local_shell_call_output"


def test_computer_call_output_acknowledges_checks():
    call = parse_item(
        {
            "type": "computer_call",
            "id": "cu_1",
            "call_id": "call_cu",
            "status": "completed",
            "action": {"type": "click", "x": 10, "y": 20, "button": "left"},
            "pending_safety_checks": [{"id": "sc_1", "code": "malicious_instructions", "message": "careful"}],
        }
    )

    assert isinstance(call, ComputerCall)
    assert call.action.params == {"x": 10, "y": 20, "button": "left"}
    output = call.output(ComputerScreenshot(image_url="data:image/png;base64,AAAA"), call.pending_safety_checks)
    data = output.to_json()
    assert data["output"] == {"type": "computer_screenshot", "image_url": "data:image/png;base64,AAAA"}
    assert data["acknowledged_safety_checks"][0]["id"] == "sc_1"


def test_mcp_approval_request_answers_by_request_id():
    request = parse_item(
        {
            "type": "mcp_approval_request",
            "id": "mcpr_1",
            "name": "roll",
            "arguments": "{}",
            "server_label": "dice",
        }
    )

    assert isinstance(request, McpApprovalRequest)
    assert request.tool_key == "mcp:dice"
    assert request.output(True).to_json() == {
        "type": "mcp_approval_response",
        "approval_request_id": "mcpr_1",
        "approve": True,
    }


def test_string_message_becomes_input_text():
    item = parse_item({"role": "user", "content": "hi"})

    assert item == InputText(role="user", text="hi")
    assert item.to_json() == {"type": "message", "role": "user", "content": "hi"}


def test_response_output_text_is_none_without_messages():
    response = Response.from_json(
        {"id": "r", "status": "completed", "output": [{"type": "reasoning", "id": "rs_1", "summary": []}]}
    )

    assert response.output_text is None


def test_response_json_survives_parse():
    data = {
        "id": "resp_1",
        "object": "response",
        "status": "completed",
        "output": [
            {
                "type": "message",
                "id": "msg_1",
                "role": "assistant",
                "content": [{"type": "output_text", "text": "ok", "annotations": []}],
                "status": "completed",
            }
        ],
        "model": "gpt-4o",
    }

    assert json.loads(json.dumps(Response.from_json(data).to_json())) == data


def test_response_tool_calls_lists_only_client_calls():
    response = Response.from_json(
        {
            "id": "resp_1",
            "status": "completed",
            "output": [
                {"type": "image_generation_call", "id": "ig_1", "status": "completed"},
                {"type": "function_call", "id": "fc_1", "call_id": "c1", "name": "add_two_ints", "arguments": "{}"},
                {"type": "mcp_approval_request", "id": "mcpr_1", "name": "roll", "arguments": "{}", "server_label": "dice"},
            ],
        }
    )

    assert [call.call_id for call in response.tool_calls] == ["c1", "mcpr_1"]
