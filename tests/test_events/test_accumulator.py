import pytest

from roundtrip.accumulator import Accumulator
from roundtrip.exceptions import ProtocolError
from roundtrip.types import (
    ErrorDetails,
    FunctionCall,
    ImageGenerationCall,
    ImagePartial,
    OutputItemAdded,
    OutputItemDelta,
    OutputItemDone,
    OutputMessage,
    Response,
    ResponseCompleted,
    ResponseError,
)


def _added(seq: int, index: int, item) -> OutputItemAdded:
    return OutputItemAdded(sequence_number=seq, output_index=index, item=item)


def _delta(seq: int, index: int, kind: str, delta: str, content_index: int = 0) -> OutputItemDelta:
    return OutputItemDelta(
        sequence_number=seq,
        output_index=index,
        kind=kind,
        delta=delta,
        content_index=content_index,
    )


def test_argument_deltas_are_joined_and_parsed_only_after_done():
    acc = Accumulator()
    call = FunctionCall(call_id="c1", name="add", arguments="", id="fc_1", status="in_progress")

    acc.feed(_added(0, 0, call))
    acc.feed(_delta(1, 0, "arguments", '{"a": 1'))
    acc.feed(_delta(2, 0, "arguments", ', "b": 2}'))

    assert acc.buffered(0, "arguments") == '{"a": 1, "b": 2}'
    assert acc.response is None

    acc.feed(OutputItemDone(sequence_number=3, output_index=0, item=call))
    response = acc.feed(ResponseCompleted(sequence_number=4, response=Response(id="resp_1", status="completed")))

    assert response is not None
    finished = response.output[0]
    assert isinstance(finished, FunctionCall)
    assert finished.arguments == '{"a": 1, "b": 2}'
    assert finished.decode_arguments() == {"a": 1, "b": 2}


def test_done_item_fields_win_over_buffers():
    acc = Accumulator()
    acc.feed(_added(0, 0, FunctionCall(call_id="c1", name="add")))
    acc.feed(_delta(1, 0, "arguments", '{"a": 9}'))
    acc.feed(OutputItemDone(sequence_number=2, output_index=0, item=FunctionCall(call_id="c1", name="add", arguments='{"a": 1}')))
    response = acc.feed(ResponseCompleted(sequence_number=3, response=Response(id="r", status="completed")))

    assert response.output[0].arguments == '{"a": 1}'


def test_text_deltas_are_kept_per_content_index():
    acc = Accumulator()
    acc.feed(_added(0, 0, OutputMessage(id="msg_1")))
    acc.feed(_delta(1, 0, "text", "Hel", content_index=0))
    acc.feed(_delta(2, 0, "text", "World", content_index=1))
    acc.feed(_delta(3, 0, "text", "lo ", content_index=0))
    acc.feed(OutputItemDone(sequence_number=4, output_index=0, item=OutputMessage(id="msg_1")))
    response = acc.feed(ResponseCompleted(sequence_number=5, response=Response(id="r", status="completed")))

    assert response.output_text == "Hello World"
    assert [part.text for part in response.output[0].content] == ["Hello ", "World"]


def test_output_follows_output_index_and_metadata_follows_snapshot():
    acc = Accumulator()
    acc.feed(_added(0, 1, FunctionCall(call_id="c2", name="b", arguments="{}")))
    acc.feed(_added(1, 0, FunctionCall(call_id="c1", name="a", arguments="{}")))
    acc.feed(OutputItemDone(sequence_number=2, output_index=1, item=FunctionCall(call_id="c2", name="b", arguments="{}")))
    acc.feed(OutputItemDone(sequence_number=3, output_index=0, item=FunctionCall(call_id="c1", name="a", arguments="{}")))
    snapshot = Response(id="resp_9", status="completed", model="gpt-4o", usage={"total_tokens": 3})
    response = acc.feed(ResponseCompleted(sequence_number=4, response=snapshot))

    assert [item.call_id for item in response.output] == ["c1", "c2"]
    assert response.id == "resp_9"
    assert response.usage == {"total_tokens": 3}


def test_item_added_but_never_done_is_assembled_from_buffers():
    acc = Accumulator()
    acc.feed(_added(0, 0, FunctionCall(call_id="c1", name="add")))
    acc.feed(_delta(1, 0, "arguments", '{"a":1}'))
    response = acc.feed(ResponseCompleted(sequence_number=2, response=Response(id="r", status="incomplete")))

    assert response.status == "incomplete"
    assert response.output[0].arguments == '{"a":1}'


def test_snapshot_output_used_when_no_item_events_seen():
    snapshot = Response(
        id="r",
        status="completed",
        output=[FunctionCall(call_id="c1", name="add", arguments="{}")],
    )
    response = Accumulator().feed(ResponseCompleted(sequence_number=0, response=snapshot))

    assert response.output == snapshot.output


def test_image_partial_is_recorded_without_touching_item():
    acc = Accumulator()
    acc.feed(_added(0, 0, ImageGenerationCall(id="ig_1", status="in_progress")))
    partial = ImagePartial(
        sequence_number=1,
        output_index=0,
        item_id="ig_1",
        partial_image_b64="cHJldmlldw==",
        partial_image_index=0,
    )
    acc.feed(partial)
    acc.feed(OutputItemDone(sequence_number=2, output_index=0, item=ImageGenerationCall(id="ig_1", status="completed", result="ZmluYWw=")))
    response = acc.feed(ResponseCompleted(sequence_number=3, response=Response(id="r", status="completed")))

    assert acc.partial_images == [partial]
    assert response.output[0].result == "ZmluYWw="


def test_response_error_short_circuits_to_failed_response():
    acc = Accumulator()
    acc.feed(_added(0, 0, OutputMessage(id="msg_1")))
    response = acc.feed(ResponseError(sequence_number=1, error=ErrorDetails(code="server_error", message="boom")))

    assert response.status == "failed"
    assert response.error.code == "server_error"
    with pytest.raises(ProtocolError):
        acc.feed(_delta(2, 0, "text", "late"))


def test_events_after_completion_are_rejected():
    acc = Accumulator()
    acc.feed(ResponseCompleted(sequence_number=0, response=Response(id="r", status="completed")))

    with pytest.raises(ProtocolError):
        acc.feed(ResponseCompleted(sequence_number=1, response=Response(id="r", status="completed")))


def test_duplicate_call_ids_raise_protocol_error():
    acc = Accumulator()
    acc.feed(OutputItemDone(sequence_number=0, output_index=0, item=FunctionCall(call_id="c1", name="a")))
    acc.feed(OutputItemDone(sequence_number=1, output_index=1, item=FunctionCall(call_id="c1", name="b")))

    with pytest.raises(ProtocolError, match="c1"):
        acc.feed(ResponseCompleted(sequence_number=2, response=Response(id="r", status="completed")))
