# approval.py
# Approval gate: the safe-mode policy boundary between a parsed ToolCall
# and its execution. The gate never runs tools itself.
#
# Policies share one interface, decide(action, input, reasoning) -> verdict:
#   AutoApprovePolicy : safe mode off, everything runs
#   ReadOnlyPolicy    : safe mode on, no callback: read-only tools only
#   CallbackPolicy    : safe mode on, host callback decides every call

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from agentic_task.executor import CallTimeout, run_with_timeout
from agentic_task.models import ApprovalVerdict
from agentic_task.registry import ToolRegistry

logger = logging.getLogger(__name__)

ApprovalCallback = Callable[[str, dict[str, Any], str], "ApprovalVerdict | Mapping[str, Any] | bool"]

REQUIRES_APPROVAL_REASON = (
    "requires approval: '{action}' can modify the system and safe mode is on. "
    "Supply an approval callback to allow mutating tools."
)


class ApprovalPolicy(Protocol):
    def decide(self, action: str, input: dict[str, Any], reasoning: str) -> ApprovalVerdict: ...


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class AutoApprovePolicy:
    """Approve everything unchanged."""

    def decide(self, action: str, input: dict[str, Any], reasoning: str) -> ApprovalVerdict:
        return ApprovalVerdict(approved=True, input=dict(input))


class ReadOnlyPolicy:
    """Approve read-only tools, reject mutating ones with a RequiresApproval verdict."""

    def __init__(self, tools: ToolRegistry) -> None:
        self._tools = tools

    def decide(self, action: str, input: dict[str, Any], reasoning: str) -> ApprovalVerdict:
        if action in self._tools and self._tools.lookup(action).read_only:
            return ApprovalVerdict(approved=True, input=dict(input))
        return ApprovalVerdict(
            approved=False,
            input=dict(input),
            reason=REQUIRES_APPROVAL_REASON.format(action=action),
            requires_approval=True,
        )


class CallbackPolicy:
    """
    Delegate every decision to a host callback.

    The callback may return an ApprovalVerdict, a mapping with `approved`
    and optionally `input` / `reason`, or a bare bool. An omitted input keeps
    the original. Any callback failure, including exceeding `timeout`
    seconds, yields a rejection.
    """

    def __init__(self, callback: ApprovalCallback, timeout: float | None = None) -> None:
        self._callback = callback
        self._timeout = timeout

    def decide(self, action: str, input: dict[str, Any], reasoning: str) -> ApprovalVerdict:
        try:
            raw = self._invoke(action, dict(input), reasoning)
        except CallTimeout:
            logger.warning("Approval callback timed out after %ss for %s", self._timeout, action)
            return ApprovalVerdict(
                approved=False,
                input=dict(input),
                reason=f"approval timed out after {self._timeout}s",
            )
        except Exception as exc:
            logger.warning("Approval callback failed for %s: %s", action, exc)
            return ApprovalVerdict(approved=False, input=dict(input), reason=f"approval callback failed: {exc}")

        return _coerce_verdict(raw, input)

    def _invoke(self, action: str, input: dict[str, Any], reasoning: str) -> Any:
        if self._timeout is None:
            return self._callback(action, input, reasoning)
        return run_with_timeout(self._callback, action, input, reasoning, timeout=self._timeout, name="approval")


def _coerce_verdict(raw: Any, original: dict[str, Any]) -> ApprovalVerdict:
    if isinstance(raw, ApprovalVerdict):
        if "input" not in raw.model_fields_set:
            return raw.model_copy(update={"input": dict(original)})
        return raw
    if isinstance(raw, bool):
        return ApprovalVerdict(approved=raw, input=dict(original), reason=None if raw else "denied by user")
    if isinstance(raw, Mapping):
        data = dict(raw)
        if data.get("input") is None:
            data["input"] = dict(original)
        if not data.get("approved") and not data.get("reason"):
            data["reason"] = "denied by user"
        try:
            return ApprovalVerdict.model_validate(data)
        except ValidationError as exc:
            logger.warning("Approval callback returned an invalid verdict: %s", exc)
            return ApprovalVerdict(approved=False, input=dict(original), reason="approval callback returned an invalid verdict")
    logger.warning("Approval callback returned unsupported type %s", type(raw).__name__)
    return ApprovalVerdict(approved=False, input=dict(original), reason="approval callback returned an invalid verdict")


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


def build_policy(
    safe_mode: bool,
    tools: ToolRegistry,
    callback: ApprovalCallback | None = None,
    timeout: float | None = None,
) -> ApprovalPolicy:
    if not safe_mode:
        return AutoApprovePolicy()
    if callback is None:
        return ReadOnlyPolicy(tools)
    return CallbackPolicy(callback, timeout=timeout)


class ApprovalGate:
    """Per-run wrapper around the selected policy."""

    def __init__(self, policy: ApprovalPolicy) -> None:
        self._policy = policy

    @classmethod
    def for_run(
        cls,
        safe_mode: bool,
        tools: ToolRegistry,
        callback: ApprovalCallback | None = None,
        timeout: float | None = None,
    ) -> "ApprovalGate":
        return cls(build_policy(safe_mode, tools, callback, timeout))

    @property
    def policy(self) -> ApprovalPolicy:
        return self._policy

    def review(self, action: str, input: dict[str, Any], reasoning: str) -> ApprovalVerdict:
        verdict = self._policy.decide(action, input, reasoning)
        if verdict.approved:
            logger.debug("Approved %s via %s", action, type(self._policy).__name__)
        else:
            logger.warning("Rejected %s: %s", action, verdict.reason)
        return verdict
