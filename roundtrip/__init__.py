"""roundtrip - tool-calling event loop for responses-style APIs."""

__version__ = "0.1.0"

from roundtrip.config import Config
from roundtrip.session import ResponsesSession, SessionStatus
from roundtrip.tools import ToolRegistry

__all__ = ["Config", "ResponsesSession", "SessionStatus", "ToolRegistry", "__version__"]
