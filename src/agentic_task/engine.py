# engine.py
# Agentic task engine: the iterate / parse / approve / execute / resume loop.
#
# The engine owns all control flow. The assistant is a passive responder:
# each iteration sends the transcript, parses one decision from the reply,
# and appends exactly one message before looping.
#
# Control flow per iteration:
#   cancelled? → budget spent? → remote call → parse
#   → FinalAnswer: Completed
#   → Unparseable: reformat request, continue
#   → ToolCall: allowed? → approval gate → executor → result, continue
#
# All terminal output is delegated to display.py, and only when the
# EngineConfig passed to this engine asks for it.

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Protocol

from agentic_task import display
from agentic_task.approval import ApprovalCallback, ApprovalGate
from agentic_task.client import ApiError, AuthError
from agentic_task.config import EngineConfig
from agentic_task.executor import ToolExecutor
from agentic_task.models import (
    AbortReason,
    Aborted,
    ActionRecord,
    Completed,
    FinalAnswer,
    LoopState,
    MaxIterationsExceeded,
    Message,
    Role,
    TaskOutcome,
    ToolCall,
    Unparseable,
)
from agentic_task.parser import parse_decision
from agentic_task.prompts import (
    build_system_prompt,
    build_task_message,
    denied_message,
    error_message,
    not_allowed_message,
    reformat_message,
    result_message,
)
from agentic_task.registry import ToolRegistry

logger = logging.getLogger(__name__)


class ChatTransport(Protocol):
    def send(self, transcript: Sequence[Message], system_prompt: str) -> str: ...


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class CancellationToken:
    """
    Thread-safe cancel flag checked at the top of every iteration.

    An in-flight remote call or tool execution always finishes first.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Per-run state
# ---------------------------------------------------------------------------


class TaskRun:
    """Mutable state of one run_task invocation. Never shared between runs."""

    def __init__(
        self,
        task: str,
        max_iterations: int,
        on_message: Callable[[Message], None] | None = None,
    ) -> None:
        self.task = task
        self.max_iterations = max_iterations
        self.iteration = 0
        self.state = LoopState.RUNNING
        self.transcript: list[Message] = []
        self.actions: list[ActionRecord] = []
        self._on_message = on_message

    def append(self, message: Message) -> None:
        self.transcript.append(message)
        if self._on_message is not None:
            self._on_message(message)

    def transition(self, state: LoopState) -> None:
        logger.debug("Task state %s -> %s (iteration %d)", self.state.value, state.value, self.iteration)
        self.state = state

    def _common(self) -> dict[str, Any]:
        return {
            "task": self.task,
            "transcript": list(self.transcript),
            "iterations": self.iteration,
            "actions": list(self.actions),
        }

    def complete(self, final_text: str) -> Completed:
        self.transition(LoopState.COMPLETED)
        return Completed(final_text=final_text, **self._common())

    def exceed(self) -> MaxIterationsExceeded:
        self.transition(LoopState.MAX_ITERATIONS_EXCEEDED)
        return MaxIterationsExceeded(**self._common())

    def abort(self, reason: AbortReason, detail: str) -> Aborted:
        self.transition(LoopState.ABORTED)
        return Aborted(reason=reason, detail=detail, **self._common())


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TaskEngine:
    """
    Runs tasks against a remote assistant and a fixed tool registry.

    The registry is frozen on construction; one engine may serve several
    concurrent run_task calls, each with its own transcript.

    Example:
        engine = TaskEngine(ChatClient.from_settings(settings), default_registry(cwd))
        outcome = engine.run_task("List all Python files", allowed_tools=["list_files"])
    """

    def __init__(
        self,
        client: ChatTransport,
        tools: ToolRegistry,
        config: EngineConfig | None = None,
    ) -> None:
        self._client = client
        self._tools = tools.freeze()
        self._config = config or EngineConfig()

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def _show(self, render: Callable[..., None], *args: Any) -> None:
        if self._config.verbose:
            render(*args)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run_task(
        self,
        task: str,
        context: str | None = None,
        allowed_tools: Iterable[str] | None = None,
        max_iterations: int | None = None,
        safe_mode: bool | None = None,
        approval_callback: ApprovalCallback | None = None,
        cancel_token: CancellationToken | None = None,
        on_message: Callable[[Message], None] | None = None,
    ) -> TaskOutcome:
        """
        Drive one task to a terminal outcome.

        Arguments left as None fall back to the engine's EngineConfig;
        allowed_tools=None offers every registered tool. Returns Completed,
        MaxIterationsExceeded or Aborted, always with the full transcript.
        """
        if not task or not task.strip():
            raise ValueError("Task cannot be empty")
        limit = self._config.max_iterations if max_iterations is None else max_iterations
        if limit < 1:
            raise ValueError("max_iterations must be at least 1")
        safe = self._config.safe_mode if safe_mode is None else safe_mode

        offered = self._tools.allowed_subset(allowed_tools)
        gate = ApprovalGate.for_run(safe, offered, approval_callback, self._config.approval_timeout)
        executor = ToolExecutor(offered, timeout=self._config.tool_timeout)
        system_prompt = build_system_prompt(offered, str(self._config.working_dir), limit)

        run = TaskRun(task, limit, on_message)
        run.append(Message(role=Role.USER, text=build_task_message(task, context)))

        logger.info("Starting task (tools=%s, safe_mode=%s, max_iterations=%d)", offered.names(), safe, limit)
        self._show(display.task_started, task, offered.names(), safe, limit)

        outcome = self._loop(run, offered, gate, executor, system_prompt, cancel_token)

        logger.info("Task finished: %s after %d iteration(s)", outcome.kind, outcome.iterations)
        self._show(display.outcome_summary, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _loop(
        self,
        run: TaskRun,
        offered: ToolRegistry,
        gate: ApprovalGate,
        executor: ToolExecutor,
        system_prompt: str,
        cancel_token: CancellationToken | None,
    ) -> TaskOutcome:
        known = offered.names()

        while True:
            if cancel_token is not None and cancel_token.cancelled:
                self._show(display.halt, "Task cancelled.")
                return run.abort(AbortReason.CANCELLED, "cancelled by caller")

            if run.iteration >= run.max_iterations:
                self._show(display.max_iterations_reached, run.max_iterations)
                return run.exceed()

            run.iteration += 1
            self._show(display.iteration_start, run.iteration, run.max_iterations)

            try:
                reply = self._client.send(run.transcript, system_prompt)
            except AuthError as exc:
                self._show(display.halt, f"Authentication failed: {exc}")
                return run.abort(AbortReason.AUTHENTICATION, str(exc))
            except ApiError as exc:
                self._show(display.halt, f"Remote call failed: {exc}")
                return run.abort(AbortReason.TRANSPORT, str(exc))

            self._show(display.assistant_reply, reply)
            decision = parse_decision(reply, known)

            if isinstance(decision, FinalAnswer):
                run.append(Message(role=Role.ASSISTANT, text=reply))
                return run.complete(decision.text)

            if isinstance(decision, Unparseable):
                logger.warning("Unparseable reply at iteration %d: %s", run.iteration, decision.reason)
                self._show(display.unparseable, decision.reason)
                run.append(Message(role=Role.USER, text=reformat_message(decision.reason)))
                continue

            self._handle_tool_call(run, decision, offered, gate, executor)

    def _handle_tool_call(
        self,
        run: TaskRun,
        call: ToolCall,
        offered: ToolRegistry,
        gate: ApprovalGate,
        executor: ToolExecutor,
    ) -> None:
        self._show(display.decision, call)

        if call.action not in offered:
            logger.warning("Assistant requested unavailable tool %r", call.action)
            self._show(display.tool_not_allowed, call.action)
            run.append(
                Message(
                    role=Role.TOOL_RESULT,
                    text=not_allowed_message(call.action, offered.names()),
                    tool=call.action,
                    is_error=True,
                )
            )
            return

        run.transition(LoopState.AWAITING_APPROVAL)
        verdict = gate.review(call.action, call.input, call.reasoning)
        run.transition(LoopState.RUNNING)

        if not verdict.approved:
            reason = verdict.reason or "not approved"
            self._show(display.approval_denied, call.action, reason)
            run.append(
                Message(
                    role=Role.TOOL_RESULT,
                    text=denied_message(call.action, reason),
                    tool=call.action,
                    is_error=True,
                )
            )
            return

        approved = call.model_copy(update={"input": verdict.input})
        result = executor.execute(approved)
        run.actions.append(
            ActionRecord(
                iteration=run.iteration,
                action=approved.action,
                input=approved.input,
                success=result.success,
                elapsed=result.elapsed,
            )
        )
        self._show(display.tool_result, result)

        if result.success:
            text = result_message(result.tool, result.output)
        else:
            text = error_message(result.tool, result.error or "unknown error")
        run.append(Message(role=Role.TOOL_RESULT, text=text, tool=result.tool, is_error=not result.success))
