"""Fold a canonical event sequence into one finalized Response."""

from collections import defaultdict
from dataclasses import replace

from roundtrip.exceptions import ProtocolError
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
from roundtrip.types.items import (
    CodeInterpreterCall,
    FunctionCall,
    McpCall,
    OutputMessage,
    OutputTextContent,
    Reasoning,
    RefusalContent,
    ResponseItem,
)
from roundtrip.types.response import Response

log = get_logger(__name__)


def check_unique_call_ids(items: list[ResponseItem]) -> None:
    """Raise ProtocolError if two call items share a call_id."""
    seen: set[str] = set()
    for item in items:
        if not (item.requires_output or item.hosted_call):
            continue
        call_id = item.call_id  # type: ignore[attr-defined]
        if call_id in seen:
            raise ProtocolError(f"Duplicate call_id in response output: {call_id}")
        seen.add(call_id)


class Accumulator:
    """Collects events of one round.

    Deltas are buffered per output index, per kind and per content index, in
    arrival order. Buffers only fill fields the finished item left empty.
    """

    def __init__(self):
        self._added: dict[int, ResponseItem] = {}
        self._done: dict[int, ResponseItem] = {}
        self._buffers: dict[int, dict[tuple[str, int], list[str]]] = defaultdict(lambda: defaultdict(list))
        self.partial_images: list[ImagePartial] = []
        self.response: Response | None = None

    @property
    def finished(self) -> bool:
        return self.response is not None

    def buffered(self, output_index: int, kind: str, content_index: int = 0) -> str:
        """Text accumulated so far for one delta stream."""
        return "".join(self._buffers.get(output_index, {}).get((kind, content_index), []))

    def feed(self, event: ResponseEvent) -> Response | None:
        """Apply one event; returns the finalized Response on the terminal event."""
        if self.response is not None:
            raise ProtocolError(f"Event received after the response was finalized: {type(event).__name__}")

        if isinstance(event, OutputItemAdded):
            self._added[event.output_index] = event.item
        elif isinstance(event, OutputItemDelta):
            self._buffers[event.output_index][(event.kind, event.content_index)].append(event.delta)
        elif isinstance(event, OutputItemDone):
            self._done[event.output_index] = self._fill(event.output_index, event.item)
        elif isinstance(event, ImagePartial):
            self.partial_images.append(event)
        elif isinstance(event, ResponseCompleted):
            self.response = self._finalize(event.response)
        elif isinstance(event, ResponseError):
            base = event.response or Response(id="", status="failed")
            output = self._assembled() if self._seen_items() else list(base.output)
            self.response = replace(base, status="failed", error=event.error, output=output)
        return self.response

    def _seen_items(self) -> bool:
        return bool(self._added or self._done)

    def _assembled(self) -> list[ResponseItem]:
        output: list[ResponseItem] = []
        for index in sorted(set(self._added) | set(self._done)):
            if index in self._done:
                output.append(self._done[index])
            else:
                log.debug("Assembling item that never finished", output_index=index)
                output.append(self._fill(index, self._added[index]))
        return output

    def _finalize(self, snapshot: Response) -> Response:
        output = self._assembled() if self._seen_items() else list(snapshot.output)
        check_unique_call_ids(output)
        return replace(snapshot, output=output)

    def _fill(self, index: int, item: ResponseItem) -> ResponseItem:
        buffers = self._buffers.get(index)
        if not buffers:
            return item

        def joined(kind: str, content_index: int = 0) -> str:
            return "".join(buffers.get((kind, content_index), []))

        if isinstance(item, FunctionCall) and not item.arguments:
            return replace(item, arguments=joined("arguments"))
        if isinstance(item, McpCall) and not item.arguments:
            return replace(item, arguments=joined("arguments"))
        if isinstance(item, CodeInterpreterCall) and not item.code:
            return replace(item, code=joined("code"))
        if isinstance(item, Reasoning) and not item.summary:
            indexes = sorted(ci for kind, ci in buffers if kind == "reasoning")
            return replace(item, summary=[joined("reasoning", ci) for ci in indexes])
        if isinstance(item, OutputMessage) and not item.content:
            parts = []
            for kind, content_index in sorted(buffers, key=lambda key: key[1]):
                if kind == "text":
                    parts.append(OutputTextContent(text=joined("text", content_index)))
                elif kind == "refusal":
                    parts.append(RefusalContent(refusal=joined("refusal", content_index)))
            return replace(item, content=parts)
        return item
