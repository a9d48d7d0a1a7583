import threading
from unittest.mock import MagicMock

import pytest

from agentic_task.approval import (
    ApprovalGate,
    AutoApprovePolicy,
    CallbackPolicy,
    ReadOnlyPolicy,
    build_policy,
)
from agentic_task.models import ApprovalVerdict
from agentic_task.registry import ToolRegistry, ToolSpec


@pytest.fixture
def registry():
    return ToolRegistry(
        [
            ToolSpec(name="read_file", description="read", function=lambda a: "", read_only=True),
            ToolSpec(name="write_file", description="write", function=lambda a: "", read_only=False),
        ]
    ).freeze()


# ---------------------------------------------------------------------------
# Policy selection
# ---------------------------------------------------------------------------


def test_build_policy_selection(registry):
    callback = MagicMock()
    assert isinstance(build_policy(False, registry), AutoApprovePolicy)
    assert isinstance(build_policy(False, registry, callback), AutoApprovePolicy)
    assert isinstance(build_policy(True, registry), ReadOnlyPolicy)
    assert isinstance(build_policy(True, registry, callback), CallbackPolicy)


def test_safe_mode_off_approves_mutating(registry):
    gate = ApprovalGate.for_run(False, registry)
    verdict = gate.review("write_file", {"filepath": "x"}, "")
    assert verdict.approved
    assert verdict.input == {"filepath": "x"}


# ---------------------------------------------------------------------------
# Safe mode without callback
# ---------------------------------------------------------------------------


def test_read_only_tool_auto_approved(registry):
    verdict = ApprovalGate.for_run(True, registry).review("read_file", {"filepath": "a"}, "")
    assert verdict.approved


def test_mutating_tool_requires_approval(registry):
    verdict = ApprovalGate.for_run(True, registry).review("write_file", {"filepath": "a"}, "")
    assert not verdict.approved
    assert verdict.requires_approval
    assert "requires approval" in verdict.reason
    assert "callback" in verdict.reason


# ---------------------------------------------------------------------------
# Callback policy
# ---------------------------------------------------------------------------


def test_callback_invoked_for_read_only_tools_too(registry):
    callback = MagicMock(return_value={"approved": False})
    verdict = ApprovalGate.for_run(True, registry, callback).review("read_file", {"filepath": "a"}, "why")
    callback.assert_called_once_with("read_file", {"filepath": "a"}, "why")
    assert not verdict.approved
    assert verdict.reason == "denied by user"


def test_callback_can_rewrite_input(registry):
    def narrow(action, tool_input, reasoning):
        return {"approved": True, "input": {**tool_input, "filepath": "sandbox/out.txt"}}

    verdict = ApprovalGate.for_run(True, registry, narrow).review("write_file", {"filepath": "/etc/x"}, "")
    assert verdict.approved
    assert verdict.input == {"filepath": "sandbox/out.txt"}


def test_callback_omitted_input_keeps_original(registry):
    verdict = CallbackPolicy(lambda *a: {"approved": True}).decide("write_file", {"filepath": "a"}, "")
    assert verdict.input == {"filepath": "a"}


def test_callback_may_return_verdict_or_bool(registry):
    verdict = ApprovalVerdict(approved=True, input={"x": 1})
    assert CallbackPolicy(lambda *a: verdict).decide("write_file", {}, "") is verdict
    assert CallbackPolicy(lambda *a: True).decide("write_file", {"a": 1}, "").approved
    assert not CallbackPolicy(lambda *a: False).decide("write_file", {}, "").approved


def test_verdict_without_input_keeps_original():
    original = {"filepath": "a.txt", "content": "hi"}
    verdict = CallbackPolicy(lambda *a: ApprovalVerdict(approved=True)).decide("write_file", original, "")
    assert verdict.approved
    assert verdict.input == original


def test_verdict_with_explicit_empty_input_is_respected():
    verdict = CallbackPolicy(lambda *a: ApprovalVerdict(approved=True, input={})).decide(
        "list_files", {"directory": "src"}, ""
    )
    assert verdict.input == {}


def test_callback_cannot_mutate_callers_input(registry):
    original = {"filepath": "a"}

    def meddle(action, tool_input, reasoning):
        tool_input["filepath"] = "changed"
        return {"approved": False}

    CallbackPolicy(meddle).decide("write_file", original, "")
    assert original == {"filepath": "a"}


def test_callback_exception_rejects():
    def boom(*args):
        raise RuntimeError("ui crashed")

    verdict = CallbackPolicy(boom).decide("write_file", {}, "")
    assert not verdict.approved
    assert "ui crashed" in verdict.reason


def test_callback_invalid_return_rejects():
    verdict = CallbackPolicy(lambda *a: "yes please").decide("write_file", {}, "")
    assert not verdict.approved
    assert "invalid verdict" in verdict.reason


def test_callback_timeout_rejects():
    release = threading.Event()

    def slow(*args):
        release.wait(5)
        return {"approved": True}

    try:
        verdict = CallbackPolicy(slow, timeout=0.05).decide("write_file", {}, "")
        stuck = [t for t in threading.enumerate() if t.name == "approval"]
        assert stuck and all(t.daemon for t in stuck)
    finally:
        release.set()
    assert not verdict.approved
    assert "timed out" in verdict.reason


def test_callback_within_timeout_returns_verdict():
    verdict = CallbackPolicy(lambda *a: {"approved": True}, timeout=5).decide("write_file", {"a": 1}, "")
    assert verdict.approved
    assert verdict.input == {"a": 1}
