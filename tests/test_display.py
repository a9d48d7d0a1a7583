import pytest
from rich.console import Console

from agentic_task import display
from agentic_task.models import AbortReason, Aborted, ActionRecord, Completed, MaxIterationsExceeded
from agentic_task.tools import default_registry


@pytest.fixture
def recorded(monkeypatch):
    console = Console(record=True, width=120)
    monkeypatch.setattr(display, "console", console)
    return console


def _answers(monkeypatch, *answers):
    queue = list(answers)
    monkeypatch.setattr(display.Prompt, "ask", lambda *a, **k: queue.pop(0))


# ---------------------------------------------------------------------------
# Interactive approval
# ---------------------------------------------------------------------------


def test_console_approval_yes(recorded, monkeypatch, tmp_path):
    _answers(monkeypatch, "y")
    verdict = display.console_approval(default_registry(tmp_path))("write_file", {"filepath": "a"}, "why")
    assert verdict.approved
    assert verdict.input == {"filepath": "a"}


def test_console_approval_no(recorded, monkeypatch, tmp_path):
    _answers(monkeypatch, "n")
    verdict = display.console_approval(default_registry(tmp_path))("write_file", {"filepath": "a"}, "")
    assert not verdict.approved
    assert verdict.reason == "denied by user"


def test_console_approval_edit_retries_bad_json(recorded, monkeypatch, tmp_path):
    _answers(monkeypatch, "e", "{not json", "[1]", '{"filepath": "b"}')
    verdict = display.console_approval(default_registry(tmp_path))("write_file", {"filepath": "a"}, "")
    assert verdict.approved
    assert verdict.input == {"filepath": "b"}
    assert "Invalid JSON" in recorded.export_text()


def test_console_approval_view_then_approve(recorded, monkeypatch, tmp_path):
    _answers(monkeypatch, "v", "y")
    verdict = display.console_approval(default_registry(tmp_path))("write_file", {"filepath": "a"}, "")
    assert verdict.approved
    assert "Tool details: write_file" in recorded.export_text()


# ---------------------------------------------------------------------------
# Outcome summary
# ---------------------------------------------------------------------------


def test_outcome_summary_variants(recorded):
    action = ActionRecord(iteration=1, action="list_files", input={"pattern": "*.R"}, success=True, elapsed=0.1)
    display.outcome_summary(Completed(task="t", transcript=[], iterations=2, actions=[action], final_text="Found 2"))
    display.outcome_summary(MaxIterationsExceeded(task="t", transcript=[], iterations=1, actions=[]))
    display.outcome_summary(
        Aborted(task="t", transcript=[], iterations=0, actions=[], reason=AbortReason.CANCELLED, detail="stop")
    )
    text = recorded.export_text()
    assert "Found 2" in text
    assert "list_files" in text
    assert "max iterations reached" in text
    assert "cancelled: stop" in text
