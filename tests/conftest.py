import asyncio
import copy
from typing import Any

import pytest

from roundtrip.config import Config, get_config, set_config
from roundtrip.transport import ResponseRequest, ResponsesTransport


class WireStream:
    """Async iterator over scripted wire events that records aclose()."""

    def __init__(self, events: list[dict[str, Any]], hang_after: int | None = None):
        self.events = list(events)
        self.hang_after = hang_after
        self.sent = 0
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self.hang_after is not None and self.sent >= self.hang_after:
            await asyncio.Event().wait()
        if self.closed or not self.events:
            raise StopAsyncIteration
        self.sent += 1
        return self.events.pop(0)

    async def aclose(self) -> None:
        self.closed = True


def _blank(item: dict[str, Any]) -> dict[str, Any]:
    blank = copy.deepcopy(item)
    kind = blank.get("type")
    if kind == "function_call":
        blank["arguments"] = ""
        blank["status"] = "in_progress"
    elif kind == "message":
        blank["content"] = []
        blank["status"] = "in_progress"
    elif kind == "image_generation_call":
        blank.pop("result", None)
        blank["status"] = "in_progress"
    return blank


def _halves(text: str) -> list[str]:
    middle = len(text) // 2
    return [part for part in (text[:middle], text[middle:]) if part]


def wire_events_for(snapshot: dict[str, Any], partial_images: int = 1) -> list[dict[str, Any]]:
    """Streaming wire events equivalent to a terminal snapshot."""
    events: list[dict[str, Any]] = [
        {"type": "response.created", "response": {**snapshot, "status": "in_progress", "output": []}},
        {"type": "response.in_progress", "response": {**snapshot, "status": "in_progress", "output": []}},
    ]
    for index, item in enumerate(snapshot.get("output") or []):
        item_id = item.get("id")
        events.append({"type": "response.output_item.added", "output_index": index, "item": _blank(item)})
        kind = item.get("type")
        if kind == "function_call":
            for part in _halves(item.get("arguments", "")):
                events.append({
                    "type": "response.function_call_arguments.delta",
                    "output_index": index,
                    "item_id": item_id,
                    "delta": part,
                })
            events.append({
                "type": "response.function_call_arguments.done",
                "output_index": index,
                "item_id": item_id,
                "arguments": item.get("arguments", ""),
            })
        elif kind == "message":
            for content_index, part in enumerate(item.get("content") or []):
                events.append({"type": "response.content_part.added", "output_index": index, "content_index": content_index})
                for chunk in _halves(part.get("text", "")):
                    events.append({
                        "type": "response.output_text.delta",
                        "output_index": index,
                        "content_index": content_index,
                        "item_id": item_id,
                        "delta": chunk,
                    })
        elif kind == "image_generation_call":
            events.append({"type": "response.image_generation_call.in_progress", "output_index": index, "item_id": item_id})
            result = item.get("result") or ""
            for partial_index in range(partial_images):
                events.append({
                    "type": "response.image_generation_call.partial_image",
                    "output_index": index,
                    "item_id": item_id,
                    "partial_image_b64": result[: max(4, len(result) // 2)],
                    "partial_image_index": partial_index,
                })
        events.append({"type": "response.output_item.done", "output_index": index, "item": copy.deepcopy(item)})

    terminal = {
        "completed": "response.completed",
        "incomplete": "response.incomplete",
        "failed": "response.failed",
    }.get(snapshot.get("status", "completed"), "response.completed")
    events.append({"type": terminal, "response": copy.deepcopy(snapshot)})
    for number, event in enumerate(events):
        event["sequence_number"] = number
    return events


class ScriptedTransport(ResponsesTransport):
    """Replays one terminal snapshot per round, streamed or not."""

    def __init__(self, rounds: list[dict[str, Any]]):
        self.rounds = list(rounds)
        self.requests: list[ResponseRequest] = []
        self.streams: list[WireStream] = []
        self.closed = False

    def _next(self, request: ResponseRequest) -> dict[str, Any]:
        self.requests.append(request)
        if not self.rounds:
            raise AssertionError("no scripted rounds left")
        return copy.deepcopy(self.rounds.pop(0))

    async def create(self, request: ResponseRequest) -> dict[str, Any]:
        return self._next(request)

    def stream(self, request: ResponseRequest) -> WireStream:
        stream = WireStream(wire_events_for(self._next(request)))
        self.streams.append(stream)
        return stream

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_config():
    old_cfg = get_config().model_copy(deep=True)
    set_config(Config())
    try:
        yield get_config()
    finally:
        set_config(old_cfg)


@pytest.fixture
def scripted_transport():
    return ScriptedTransport


@pytest.fixture
def wire_events():
    return wire_events_for


@pytest.fixture
def wire_stream():
    return WireStream
