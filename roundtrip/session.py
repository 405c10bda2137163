"""Session controller: drives rounds until no tool call is left unanswered."""

import asyncio
import inspect
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable

from roundtrip.accumulator import Accumulator
from roundtrip.config import get_config
from roundtrip.dispatch import DispatchEngine, pending_calls
from roundtrip.exceptions import (
    PendingToolCallsError,
    ProtocolError,
    ResponseFailedError,
    RoundLimitError,
    SessionCancelledError,
    SessionClosedError,
    SessionError,
    TransportError,
    UnhandledToolCallError,
)
from roundtrip.logging import get_logger
from roundtrip.normalizer import iterate_events, normalize_snapshot, normalize_stream
from roundtrip.tools.registry import ToolHandler, ToolRegistry
from roundtrip.transport import ResponseRequest, ResponsesTransport, get_transport
from roundtrip.types.events import ResponseError, ResponseEvent, is_terminal
from roundtrip.types.items import InputText, ResponseItem, parse_item
from roundtrip.types.response import ErrorDetails, Response
from roundtrip.types.tools import ToolChoice, ToolChoiceMode

log = get_logger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    IN_ROUND = "in_round"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {SessionStatus.COMPLETED, SessionStatus.FAILED, SessionStatus.CANCELLED}

Listener = Callable[[ResponseEvent], Any]
InputLike = str | ResponseItem | dict[str, Any] | list[ResponseItem | dict[str, Any]] | None

_CLOSED = object()


def normalize_input(value: InputLike) -> list[ResponseItem]:
    """Coerce caller input into a list of items; a string is one user message."""
    if value is None:
        return []
    if isinstance(value, str):
        return [InputText(role="user", text=value)]
    if isinstance(value, (ResponseItem, dict)):
        value = [value]
    return [parse_item(item) if isinstance(item, dict) else item for item in value]


class EventChannel:
    """Per-session fan-out of canonical events.

    Listeners are called in subscription order; async listeners are
    awaited. Each ``events()`` iterator gets its own queue and ends when the
    channel closes.
    """

    def __init__(self):
        self._listeners: list[Listener] = []
        self._queues: list[asyncio.Queue[Any]] = []
        self.closed = False

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def events(self) -> AsyncIterator[ResponseEvent]:
        queue: asyncio.Queue[Any] = asyncio.Queue()
        if self.closed:
            queue.put_nowait(_CLOSED)
        else:
            self._queues.append(queue)
        return self._drain(queue)

    async def _drain(self, queue: asyncio.Queue[Any]) -> AsyncIterator[ResponseEvent]:
        try:
            while True:
                event = await queue.get()
                if event is _CLOSED:
                    return
                yield event
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    async def publish(self, event: ResponseEvent) -> None:
        if self.closed:
            raise ProtocolError(f"Event published on a closed channel: {type(event).__name__}")
        for queue in self._queues:
            queue.put_nowait(event)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.warning("Event listener failed", event=type(event).__name__, error=str(e))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for queue in self._queues:
            queue.put_nowait(_CLOSED)
        self._queues.clear()

    def reopen(self) -> None:
        self.closed = False


def _log_abandoned(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        log.warning("Abandoned task failed", error=str(error))


class ResponsesSession:
    """Drives a tool-calling conversation through repeated rounds.

    Each round sends the current input, folds the resulting events into a
    Response, and, when the response asks for client tools, dispatches them
    and queues their outputs as the next round's input.

    With ``store=True`` the next round sends only the new items plus
    ``previous_response_id``; otherwise the full transcript is resent.
    """

    def __init__(
        self,
        input: InputLike = None,
        tools: ToolRegistry | list[ToolHandler] | None = None,
        transport: ResponsesTransport | None = None,
        model: str | None = None,
        tool_choice: ToolChoice | None = None,
        store: bool | None = None,
        stream: bool | None = None,
        auto_dispatch: bool | None = None,
        parallel_dispatch: bool | None = None,
        max_rounds: int | None = None,
        previous_response_id: str | None = None,
        instructions: str | None = None,
        reset_tool_choice: bool = True,
        options: dict[str, Any] | None = None,
    ):
        cfg = get_config().session
        self.transport = transport or get_transport()
        self.model = model or cfg.model
        self.store = cfg.store if store is None else store
        self.stream = cfg.stream if stream is None else stream
        self.auto_dispatch = cfg.auto_dispatch if auto_dispatch is None else auto_dispatch
        self.max_rounds = int(max_rounds or cfg.max_rounds)
        self.instructions = instructions
        self.reset_tool_choice = reset_tool_choice
        self.options = dict(options or {})

        if isinstance(tools, ToolRegistry):
            self.registry = tools.snapshot()
        else:
            self.registry = ToolRegistry(tools)
        self.registry.validate_tool_choice(tool_choice)
        self.tool_choice = tool_choice
        self.dispatcher = DispatchEngine(self.registry, parallel=parallel_dispatch)

        self.input: list[ResponseItem] = normalize_input(input)
        self.previous_response_id = previous_response_id
        self.status = SessionStatus.IDLE
        self.last_response: Response | None = None
        self.responses: list[Response] = []
        self.error: BaseException | None = None
        self.rounds = 0

        self.channel = EventChannel()
        self._pending: list[ResponseItem] = []
        self._answered: set[str] = set()
        self._cancel_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Caller surface
    # ------------------------------------------------------------------

    @property
    def pending_calls(self) -> list[ResponseItem]:
        """Client calls still waiting for submit_tool_outputs()."""
        return list(self._pending)

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.channel.subscribe(listener)

    def events(self) -> AsyncIterator[ResponseEvent]:
        """Iterate every canonical event until the session reaches a terminal state."""
        return self.channel.events()

    def add_user_input(self, value: InputLike) -> None:
        """Queue more input for the next round; reopens a completed session."""
        if self.status in (SessionStatus.FAILED, SessionStatus.CANCELLED):
            raise SessionClosedError(self.status.value)
        if self.status in (SessionStatus.IN_ROUND, SessionStatus.EVALUATING):
            raise SessionError("Cannot add input while a round is in flight")
        self.input.extend(normalize_input(value))
        if self.status is SessionStatus.COMPLETED:
            self.status = SessionStatus.IDLE
            self.channel.reopen()

    def submit_tool_outputs(self, outputs: list[ResponseItem]) -> None:
        """Answer pending calls in manual tick mode."""
        if self.done:
            raise SessionClosedError(self.status.value)
        pending = {call.call_id: call for call in self._pending}  # type: ignore[attr-defined]
        for output in outputs:
            call_id = getattr(output, "call_id", None)
            if call_id not in pending:
                raise ProtocolError(f"No pending tool call for output: {call_id}")
        for output in outputs:
            call_id = output.call_id  # type: ignore[attr-defined]
            self._pending.remove(pending.pop(call_id))
            self._answered.add(call_id)
            self.input.append(output)
        log.debug("Tool outputs submitted", count=len(outputs), remaining=len(self._pending))

    def cancel(self) -> None:
        """Cancel the session; an in-flight round raises SessionCancelledError."""
        if self.done:
            return
        log.info("Cancelling session", status=self.status.value)
        self._cancel_event.set()
        if self.status is SessionStatus.IDLE:
            self._enter_cancelled()

    async def tick(self) -> Response:
        """Run one round and return its finalized Response.

        Raises:
            SessionClosedError if the session already reached a terminal state
            PendingToolCallsError if calls from the last round are unanswered
            SessionCancelledError if cancel() interrupts the round
            The round's fatal error (transport, ResponseFailedError, UnhandledToolCallError)
        """
        if self.done:
            raise SessionClosedError(self.status.value)
        if self.status is not SessionStatus.IDLE:
            raise SessionError("A round is already in flight")
        if self._pending:
            raise PendingToolCallsError([call.call_id for call in self._pending])  # type: ignore[attr-defined]

        request = self._build_request()
        self.status = SessionStatus.IN_ROUND
        self.rounds += 1
        log.info(
            "Round started",
            round=self.rounds,
            model=self.model,
            items=len(request.input),
            store=self.store,
            stream=self.stream,
        )
        try:
            try:
                response = await self._run_round(request)
            except TransportError as e:
                if self._cancel_event.is_set():
                    raise SessionCancelledError() from e
                raise
            # cancel() may have been called from a listener of the terminal event
            if self._cancel_event.is_set():
                raise SessionCancelledError()
            self.status = SessionStatus.EVALUATING
            await self._evaluate(response)
            return response
        except SessionCancelledError:
            self._enter_cancelled()
            raise
        except asyncio.CancelledError:
            self._enter_cancelled()
            raise
        except Exception as e:
            self._fail(e)
            raise

    async def run(self) -> Response:
        """Run rounds until the session completes.

        In manual tick mode this also returns as soon as a round leaves
        calls for submit_tool_outputs().
        """
        for _ in range(self.max_rounds):
            response = await self.tick()
            if self.status is SessionStatus.COMPLETED or self._pending:
                return response
        error = RoundLimitError(self.max_rounds)
        self._fail(error)
        raise error

    # ------------------------------------------------------------------
    # Round internals
    # ------------------------------------------------------------------

    def _build_request(self) -> ResponseRequest:
        return ResponseRequest(
            model=self.model,
            input=list(self.input),
            tools=self.registry.get_definitions(),
            tool_choice=self.tool_choice,
            store=self.store,
            previous_response_id=self.previous_response_id,
            instructions=self.instructions,
            options=dict(self.options),
        )

    async def _run_round(self, request: ResponseRequest) -> Response:
        accumulator = Accumulator()
        try:
            if self.stream:
                events = normalize_stream(self.transport.stream(request))
            else:
                snapshot = await self._cancellable(self.transport.create(request))
                events = iterate_events(normalize_snapshot(snapshot))
        except TransportError as e:
            await self._publish_transport_error(e)
            raise

        try:
            while True:
                try:
                    event = await self._cancellable(events.__anext__())
                except TransportError as e:
                    await self._publish_transport_error(e)
                    raise
                accumulator.feed(event)
                await self._publish(event)
                if is_terminal(event):
                    break
        finally:
            await events.aclose()  # type: ignore[attr-defined]

        response = accumulator.response
        if response is None:
            raise ProtocolError("Round ended without a terminal event")
        return response

    async def _publish(self, event: ResponseEvent) -> None:
        await self.registry.notify(event)
        await self.channel.publish(event)

    async def _publish_transport_error(self, error: TransportError) -> None:
        """Give listeners a terminal event for a round the transport broke off."""
        await self._publish(
            ResponseError(
                sequence_number=0,
                error=ErrorDetails(
                    code=getattr(error, "code", None),
                    message=str(error),
                    param=getattr(error, "param", None),
                ),
            )
        )

    async def _evaluate(self, response: Response) -> None:
        self.last_response = response
        self.responses.append(response)
        log.info(
            "Round finished",
            round=self.rounds,
            response_id=response.id,
            status=response.status,
            items=len(response.output),
        )

        if response.status == "failed" or response.error is not None:
            raise ResponseFailedError(response.error or ErrorDetails(message="response failed"), response)

        if self.store:
            self.previous_response_id = response.id
            self.input = []
        else:
            self.input = [*self.input, *response.output]

        calls = pending_calls(response.output, self._answered)
        if calls and self.reset_tool_choice and self._forces_tool():
            log.debug("Resetting tool choice after forced call", tool_choice=str(self.tool_choice))
            self.tool_choice = None

        if not self.auto_dispatch:
            await self._cancellable(self.dispatcher.observe(response.output), abandon=True)
            self._pending = calls
            self._finish_evaluation(bool(calls))
            return

        result = await self._cancellable(
            self.dispatcher.dispatch(response.output, self._answered),
            abandon=True,
        )
        if result.unhandled:
            raise UnhandledToolCallError(result.unhandled)

        for output in result.outputs:
            self._answered.add(output.call_id)  # type: ignore[attr-defined]
        self.input.extend(result.outputs)
        self._finish_evaluation(bool(result.outputs))

    def _finish_evaluation(self, more_rounds: bool) -> None:
        if more_rounds:
            self.status = SessionStatus.IDLE
            return
        self.status = SessionStatus.COMPLETED
        self.channel.close()
        log.info("Session completed", rounds=self.rounds)

    def _forces_tool(self) -> bool:
        choice = self.tool_choice
        if choice is None:
            return False
        if isinstance(choice, ToolChoiceMode):
            return choice.mode == "required"
        return True

    async def _cancellable(self, aw: Awaitable[Any], abandon: bool = False) -> Any:
        """Await ``aw`` unless cancel() fires first.

        Abandoned work keeps running; its exception is retrieved and logged.
        Otherwise the work is cancelled, which closes an in-flight stream.
        """
        task = asyncio.ensure_future(aw)
        cancel_wait = asyncio.ensure_future(self._cancel_event.wait())
        try:
            await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._drop(task, abandon)
            raise
        finally:
            if not cancel_wait.done():
                cancel_wait.cancel()

        if self._cancel_event.is_set():
            await self._drop(task, abandon)
            raise SessionCancelledError()
        return task.result()

    @staticmethod
    async def _drop(task: asyncio.Future[Any], abandon: bool) -> None:
        if abandon:
            if task.done():
                _log_abandoned(task)
            else:
                task.add_done_callback(_log_abandoned)
            return
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.debug("Dropped task raised", error=str(e))

    def _enter_cancelled(self) -> None:
        if self.status is SessionStatus.CANCELLED:
            return
        self.status = SessionStatus.CANCELLED
        self._pending = []
        self.channel.close()
        log.info("Session cancelled", rounds=self.rounds)

    def _fail(self, error: BaseException) -> None:
        self.status = SessionStatus.FAILED
        self.error = error
        self.channel.close()
        log.error("Session failed", error=str(error), error_type=type(error).__name__)
