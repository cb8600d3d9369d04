from .base import FunctionTool, ToolCall, ToolDefinition, ToolExecutionResult, tool_schema
from .cache import TtlCache
from .executor import ToolExecutor
from .registry import ToolRegistry, tool_registry

__all__ = [
    "FunctionTool",
    "ToolCall",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolExecutor",
    "ToolRegistry",
    "TtlCache",
    "tool_registry",
    "tool_schema",
]
