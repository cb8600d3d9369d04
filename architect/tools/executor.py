from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable, Iterable, Mapping, Sequence

from ..core import metrics
from ..core.config import DEFAULT_WRITE_PREFIXES, ToolSettings
from ..core.logging import get_logger
from .base import ToolCall, ToolDefinition, ToolExecutionResult
from .cache import TtlCache
from .exceptions import ToolPayloadValidationError
from .registry import ToolRegistry, normalize_tool_name
from .utils import create_tool_cache_key, is_write_tool, normalize_tool_params
from .validation import ToolPayloadValidator

logger = get_logger(name=__name__)

__all__ = ["ToolExecutor", "index_tools"]

MISSING_PARAMETERS_ERROR = "Missing required parameters"
EXECUTION_FAILED_ERROR = "Tool execution failed"
TOOL_NOT_FOUND_ERROR = "Tool not found"
CIRCUIT_OPEN_ERROR = "Tool temporarily unavailable"


def index_tools(tools: Mapping[str, ToolDefinition] | Iterable[ToolDefinition]) -> dict[str, ToolDefinition]:
    if isinstance(tools, ToolRegistry):
        return {normalize_tool_name(name): tool for name, tool in tools.items()}
    if isinstance(tools, Mapping):
        return {normalize_tool_name(name): tool for name, tool in tools.items()}
    return {normalize_tool_name(tool.name): tool for tool in tools}


class ToolExecutor:
    """Runs tool calls behind validation, a read-result cache and a failure boundary.

    ``execute_tool`` never raises for tool-side problems: missing parameters,
    open circuits and exceptions thrown by the tool all come back as a failed
    ``ToolExecutionResult``.
    """

    def __init__(
        self,
        *,
        cache: TtlCache[Any] | None = None,
        cache_ttl_seconds: float = 15.0,
        write_prefixes: Sequence[str] = DEFAULT_WRITE_PREFIXES,
        registry: ToolRegistry | None = None,
        validator: ToolPayloadValidator | None = None,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._cache: TtlCache[Any] = cache if cache is not None else TtlCache(default_ttl=cache_ttl_seconds)
        self._cache_ttl = cache_ttl_seconds
        self._write_prefixes = tuple(write_prefixes)
        self._registry = registry
        self._validator = validator or ToolPayloadValidator()
        self._timer = timer

    @classmethod
    def from_settings(cls, settings: ToolSettings, *, registry: ToolRegistry | None = None) -> "ToolExecutor":
        cache: TtlCache[Any] = TtlCache(max_size=settings.cache_size, default_ttl=settings.cache_ttl_seconds)
        return cls(
            cache=cache,
            cache_ttl_seconds=settings.cache_ttl_seconds,
            write_prefixes=settings.write_prefixes,
            registry=registry,
            validator=ToolPayloadValidator(max_string_length=settings.max_string_length),
        )

    @property
    def write_prefixes(self) -> tuple[str, ...]:
        return self._write_prefixes

    def is_write(self, tool_name: str) -> bool:
        return is_write_tool(tool_name, self._write_prefixes)

    async def execute_tool(
        self,
        tool: ToolDefinition,
        call: ToolCall,
        user_id: str,
        use_cache: bool = True,
    ) -> ToolExecutionResult:
        params = normalize_tool_params(call.parameters)
        try:
            self._validator.validate(tool, params)
        except ToolPayloadValidationError as exc:
            metrics.record_tool_invocation(tool=tool.name, cached=False, success=False)
            if exc.missing:
                return ToolExecutionResult(
                    tool_name=tool.name,
                    success=False,
                    result={"error": MISSING_PARAMETERS_ERROR, "missing": list(exc.missing)},
                    error=f"{MISSING_PARAMETERS_ERROR}: {', '.join(exc.missing)}",
                )
            return ToolExecutionResult(tool_name=tool.name, success=False, result={"error": str(exc)}, error=str(exc))

        if self._registry is not None and self._registry.is_circuit_open(tool.name):
            logger.warning("tool_circuit_open", tool=tool.name)
            metrics.record_tool_invocation(tool=tool.name, cached=False, success=False)
            return ToolExecutionResult(
                tool_name=tool.name,
                success=False,
                result={"error": CIRCUIT_OPEN_ERROR},
                error=f"Tool '{tool.name}' is temporarily unavailable",
            )

        cacheable = use_cache and not self.is_write(tool.name)
        cache_key = create_tool_cache_key(user_id, tool.name, params) if cacheable else None
        if cache_key is not None:
            hit = self._cache.get(cache_key)
            if hit is not None:
                logger.debug("tool_cache_hit", tool=tool.name)
                metrics.record_tool_invocation(tool=tool.name, cached=True, success=True)
                return ToolExecutionResult(tool_name=tool.name, success=True, result=hit, cached=True)

        start = self._timer()
        try:
            outcome = tool.execute(params)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            duration = self._timer() - start
            message = str(exc) or exc.__class__.__name__
            logger.warning("tool_execution_failed", tool=tool.name, error=message)
            if self._registry is not None:
                self._registry.record_failure(tool.name)
            metrics.record_tool_invocation(tool=tool.name, cached=False, success=False, latency=duration)
            return ToolExecutionResult(
                tool_name=tool.name,
                success=False,
                result={"error": EXECUTION_FAILED_ERROR},
                error=message,
                duration_ms=duration * 1000,
            )

        duration = self._timer() - start
        if self._registry is not None:
            self._registry.record_success(tool.name)
        metrics.record_tool_invocation(tool=tool.name, cached=False, success=True, latency=duration)
        if cache_key is not None and outcome is not None and not _is_error_shaped(outcome):
            self._cache.set(cache_key, outcome, self._cache_ttl)
        return ToolExecutionResult(tool_name=tool.name, success=True, result=outcome, duration_ms=duration * 1000)

    async def execute_tools_parallel(
        self,
        calls: Sequence[ToolCall],
        tools: Mapping[str, ToolDefinition] | Iterable[ToolDefinition],
        user_id: str,
        use_cache: bool = True,
    ) -> list[ToolExecutionResult]:
        index = index_tools(tools)

        async def _run(call: ToolCall) -> ToolExecutionResult:
            tool = index.get(normalize_tool_name(call.name))
            if tool is None:
                return _not_found(call)
            return await self.execute_tool(tool, call, user_id, use_cache)

        return list(await asyncio.gather(*(_run(call) for call in calls)))

    async def execute_tools_sequential(
        self,
        calls: Sequence[ToolCall],
        tools: Mapping[str, ToolDefinition] | Iterable[ToolDefinition],
        user_id: str,
        use_cache: bool = True,
    ) -> list[ToolExecutionResult]:
        """Run calls in order, stopping after the first failure."""
        index = index_tools(tools)
        results: list[ToolExecutionResult] = []
        for call in calls:
            tool = index.get(normalize_tool_name(call.name))
            result = _not_found(call) if tool is None else await self.execute_tool(tool, call, user_id, use_cache)
            results.append(result)
            if not result.success:
                break
        return results

    def invalidate_user(self, user_id: str) -> int:
        return self._cache.invalidate_prefix(f"{user_id}:")

    def clear_cache(self) -> None:
        self._cache.clear()


def _not_found(call: ToolCall) -> ToolExecutionResult:
    return ToolExecutionResult(
        tool_name=call.name,
        success=False,
        result={"error": TOOL_NOT_FOUND_ERROR},
        error=f"Tool '{call.name}' not found",
    )


def _is_error_shaped(value: Any) -> bool:
    return isinstance(value, Mapping) and "error" in value
