"""Turn transport output into one canonical event sequence.

A non-streaming round hands over one terminal snapshot; a streaming round
hands over wire events. Both come out of here as ``ResponseEvent`` values that
end in exactly one terminal event.
"""

from typing import Any, AsyncIterator, Iterable

from roundtrip.exceptions import IncompleteStreamError, ProtocolError
from roundtrip.logging import get_logger
from roundtrip.types.events import (
    ImagePartial,
    OutputItemAdded,
    OutputItemDelta,
    OutputItemDone,
    ResponseCompleted,
    ResponseError,
    ResponseEvent,
)
from roundtrip.types.items import parse_item
from roundtrip.types.response import ErrorDetails, Response

log = get_logger(__name__)


DELTA_KINDS: dict[str, str] = {
    "response.output_text.delta": "text",
    "response.refusal.delta": "refusal",
    "response.function_call_arguments.delta": "arguments",
    "response.mcp_call_arguments.delta": "arguments",
    "response.reasoning_summary_text.delta": "reasoning",
    "response.reasoning_text.delta": "reasoning",
    "response.code_interpreter_call_code.delta": "code",
}


def _terminal_for(response: Response, sequence_number: int) -> ResponseEvent:
    if response.status == "failed":
        error = response.error or ErrorDetails(code="response_failed", message="response failed")
        return ResponseError(sequence_number=sequence_number, error=error, response=response)
    return ResponseCompleted(sequence_number=sequence_number, response=response)


def normalize_snapshot(snapshot: dict[str, Any] | Response) -> list[ResponseEvent]:
    """Synthesize the event sequence a stream would have produced for a snapshot.

    Raises:
        ProtocolError if the snapshot JSON is malformed
    """
    if isinstance(snapshot, Response):
        response = snapshot
    else:
        try:
            response = Response.from_json(snapshot)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed response snapshot: {e!r}") from e

    events: list[ResponseEvent] = []
    for index, item in enumerate(response.output):
        events.append(OutputItemAdded(sequence_number=len(events), output_index=index, item=item))
        events.append(OutputItemDone(sequence_number=len(events), output_index=index, item=item))
    events.append(_terminal_for(response, len(events)))
    return events


def normalize_event(data: dict[str, Any], sequence_number: int) -> ResponseEvent | None:
    """Map one wire event to its canonical form, or None when it is a no-op."""
    event_type = str(data.get("type") or "")
    seq = data.get("sequence_number")
    if not isinstance(seq, int):
        seq = sequence_number

    try:
        if event_type == "response.output_item.added":
            return OutputItemAdded(
                sequence_number=seq,
                output_index=int(data["output_index"]),
                item=parse_item(data["item"]),
            )
        if event_type == "response.output_item.done":
            return OutputItemDone(
                sequence_number=seq,
                output_index=int(data["output_index"]),
                item=parse_item(data["item"]),
            )
        kind = DELTA_KINDS.get(event_type)
        if kind is not None:
            content_index = data.get("content_index", data.get("summary_index", 0))
            return OutputItemDelta(
                sequence_number=seq,
                output_index=int(data["output_index"]),
                kind=kind,  # type: ignore[arg-type]
                delta=str(data.get("delta") or ""),
                content_index=int(content_index or 0),
                item_id=data.get("item_id"),
            )
        if event_type == "response.image_generation_call.partial_image":
            return ImagePartial(
                sequence_number=seq,
                output_index=int(data["output_index"]),
                item_id=str(data.get("item_id") or ""),
                partial_image_b64=str(data["partial_image_b64"]),
                partial_image_index=int(data.get("partial_image_index") or 0),
            )
        if event_type in ("response.completed", "response.incomplete"):
            response = Response.from_json(data["response"])
            if event_type == "response.incomplete":
                response.status = "incomplete"
            return ResponseCompleted(sequence_number=seq, response=response)
        if event_type == "response.failed":
            response = Response.from_json(data["response"])
            response.status = "failed"
            return _terminal_for(response, seq)
        if event_type == "error":
            return ResponseError(
                sequence_number=seq,
                error=ErrorDetails(
                    code=data.get("code"),
                    message=str(data.get("message") or ""),
                    param=data.get("param"),
                ),
            )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ProtocolError(f"Malformed '{event_type}' event: {e}") from e

    log.debug("Ignoring wire event", type=event_type)
    return None


async def normalize_stream(wire_events: AsyncIterator[dict[str, Any]]) -> AsyncIterator[ResponseEvent]:
    """Re-tag wire events into canonical events, stopping at the terminal one.

    The wire stream is always closed on exit, including when the consumer
    stops early. Raises IncompleteStreamError if the stream ends before a
    terminal event.
    """
    received = 0
    try:
        async for data in wire_events:
            event = normalize_event(data, received)
            received += 1
            if event is None:
                continue
            yield event
            if isinstance(event, (ResponseCompleted, ResponseError)):
                return
        raise IncompleteStreamError()
    finally:
        aclose = getattr(wire_events, "aclose", None)
        if aclose is not None:
            await aclose()


async def iterate_events(events: Iterable[ResponseEvent]) -> AsyncIterator[ResponseEvent]:
    """Expose synthesized snapshot events with the same async shape as a stream."""
    for event in events:
        yield event
