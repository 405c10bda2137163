"""Function handler wrapping a plain callable."""

import asyncio
import inspect
from typing import Any, Callable

from roundtrip.tools.registry import FunctionHandler, ToolResult


class FunctionToolDelegate(FunctionHandler):
    """Expose a sync or async callable as a function tool.

    Sync callables run in a worker thread so they never block the loop.
    """

    def __init__(
        self,
        name: str,
        func: Callable[..., Any],
        description: str = "",
        parameters: dict[str, Any] | None = None,
        strict: bool = False,
        timeout_seconds: float | None = None,
    ):
        self.name = name
        self.func = func
        self.description = description or (inspect.getdoc(func) or "").split("\n", 1)[0]
        self.parameters = parameters or {"type": "object", "properties": {}}
        self.strict = strict
        self.timeout_seconds = timeout_seconds

    async def execute(self, **kwargs: Any) -> ToolResult | str | Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(**kwargs)
        result = await asyncio.to_thread(self.func, **kwargs)
        if inspect.isawaitable(result):
            return await result
        return result
