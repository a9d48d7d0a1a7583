# executor.py
# Tool executor: runs one approved ToolCall against the registry.
#
# Tool failures are data: every failure mode (unknown tool, invalid input,
# ToolError, unexpected exception, timeout) comes back as a ToolResult with
# success=False. Nothing is retried here.

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from agentic_task.models import ToolCall, ToolResult
from agentic_task.registry import ParameterSpec, ToolError, ToolNotFoundError, ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)

_TYPE_CHECKS: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list,),
}


def validate_input(spec: ToolSpec, tool_input: dict[str, Any]) -> list[str]:
    """
    Check `tool_input` against the declared parameters.

    Returns a list of error strings (empty if valid). Unknown keys are not
    errors; the executor drops them before calling the tool.
    """
    errors: list[str] = []
    for name in spec.required_parameters:
        if tool_input.get(name) is None:
            errors.append(f"missing required parameter: {name}")

    for name, value in tool_input.items():
        param = spec.parameters.get(name)
        if param is None or value is None:
            continue
        if not _matches_type(param, value):
            errors.append(f"parameter '{name}' must be {param.type}, got {type(value).__name__}")
    return errors


def _matches_type(param: ParameterSpec, value: Any) -> bool:
    expected = _TYPE_CHECKS.get(param.type)
    if expected is None:
        return True
    # bool is an int subclass; never accept it for numeric parameters
    if isinstance(value, bool) and param.type in ("integer", "number"):
        return False
    return isinstance(value, expected)


# ---------------------------------------------------------------------------
# Bounded calls
# ---------------------------------------------------------------------------


class CallTimeout(Exception):
    """Raised by run_with_timeout when the call outlives its time limit."""


def run_with_timeout(fn: Callable[..., Any], *args: Any, timeout: float, name: str) -> Any:
    """
    Call fn(*args) in a daemon worker thread and wait at most `timeout` seconds.

    A call that times out is abandoned, not killed: its thread keeps running
    but never holds up interpreter exit. Exceptions from fn are re-raised here.
    """
    outcome: dict[str, Any] = {}

    def work() -> None:
        try:
            outcome["value"] = fn(*args)
        except BaseException as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=work, name=name, daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise CallTimeout(f"{name} still running after {timeout}s")
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("value")


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class ToolExecutor:
    """
    Runs tool functions with input validation and a per-call timeout.

    Example:
        executor = ToolExecutor(registry, timeout=30)
        result = executor.execute(ToolCall(action="list_files", input={"pattern": "*.py"}))
    """

    def __init__(self, tools: ToolRegistry, timeout: float | None = 60.0) -> None:
        self._tools = tools
        self._timeout = timeout

    def execute(self, call: ToolCall) -> ToolResult:
        started = time.monotonic()

        try:
            spec = self._tools.lookup(call.action)
        except ToolNotFoundError as exc:
            return self._failure(call.action, str(exc), started)

        errors = validate_input(spec, call.input)
        if errors:
            return self._failure(call.action, f"InvalidInput: {'; '.join(errors)}", started)

        accepted = {key: value for key, value in call.input.items() if key in spec.parameters}

        try:
            output = self._run(spec, accepted)
        except CallTimeout:
            return self._failure(call.action, f"Tool timed out after {self._timeout}s", started)
        except ToolError as exc:
            return self._failure(call.action, exc.message, started)
        except Exception as exc:
            logger.exception("Tool %s raised unexpectedly", call.action)
            return self._failure(call.action, f"{type(exc).__name__}: {exc}", started)

        elapsed = time.monotonic() - started
        logger.info("Tool %s succeeded in %.2fs", call.action, elapsed)
        return ToolResult(tool=call.action, success=True, output=output, elapsed=elapsed)

    def _run(self, spec: ToolSpec, tool_input: dict[str, Any]) -> Any:
        if self._timeout is None:
            return spec.function(tool_input)
        return run_with_timeout(spec.function, tool_input, timeout=self._timeout, name=f"tool-{spec.name}")

    @staticmethod
    def _failure(tool: str, error: str, started: float) -> ToolResult:
        logger.warning("Tool %s failed: %s", tool, error)
        return ToolResult(tool=tool, success=False, error=error, elapsed=time.monotonic() - started)
