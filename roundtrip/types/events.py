"""Canonical response events shared by streaming and non-streaming rounds."""

from dataclasses import dataclass
from typing import Literal

from roundtrip.types.items import ResponseItem
from roundtrip.types.response import ErrorDetails, Response


DeltaKind = Literal["text", "refusal", "arguments", "reasoning", "code"]


@dataclass
class ResponseEvent:
    sequence_number: int


@dataclass
class OutputItemAdded(ResponseEvent):
    output_index: int
    item: ResponseItem


@dataclass
class OutputItemDelta(ResponseEvent):
    output_index: int
    kind: DeltaKind
    delta: str
    content_index: int = 0
    item_id: str | None = None


@dataclass
class OutputItemDone(ResponseEvent):
    output_index: int
    item: ResponseItem


@dataclass
class ImagePartial(ResponseEvent):
    output_index: int
    item_id: str
    partial_image_b64: str
    partial_image_index: int


@dataclass
class ResponseCompleted(ResponseEvent):
    response: Response


@dataclass
class ResponseError(ResponseEvent):
    error: ErrorDetails
    response: Response | None = None


TERMINAL_EVENTS = (ResponseCompleted, ResponseError)


def is_terminal(event: ResponseEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)
