from unittest.mock import MagicMock

import pytest
from rich.console import Console

from agentic_task import display, run
from agentic_task.client import ChatClient

DONE = (
    "All done.\n"
    "<TOOL_DECISION>\nACTION: final_answer\nINPUT: {}\nREASONING: finished\nSTATUS: done\n</TOOL_DECISION>"
)


@pytest.fixture
def recorded(monkeypatch, tmp_path):
    console = Console(record=True, width=120)
    monkeypatch.setattr(display, "console", console)
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("AGENTIC_API_KEY", raising=False)
    monkeypatch.setenv("AGENTIC_WORKING_DIR", str(tmp_path))
    return console


def test_list_tools(recorded):
    assert run.main(["--list-tools"]) == 0
    text = recorded.export_text()
    assert "read_file" in text
    assert "write_file" in text


def test_missing_api_key_exits_2(recorded):
    assert run.main(["list the files"]) == 2
    assert "API key" in recorded.export_text()


def test_task_is_required(recorded):
    with pytest.raises(SystemExit):
        run.main([])


def test_completed_task_exits_0(recorded, monkeypatch):
    monkeypatch.setenv("AGENTIC_API_KEY", "test-key")
    client = MagicMock()
    client.send.return_value = DONE
    monkeypatch.setattr(ChatClient, "from_settings", classmethod(lambda cls, settings: client))

    assert run.main(["summarise the project", "--preset", "read_only", "--max-iterations", "2"]) == 0
    system_prompt = client.send.call_args.args[1]
    assert "write_file" not in system_prompt
    assert "read_file" in system_prompt


def test_exhausted_budget_exits_1(recorded, monkeypatch):
    monkeypatch.setenv("AGENTIC_API_KEY", "test-key")
    client = MagicMock()
    client.send.return_value = "thinking..."
    monkeypatch.setattr(ChatClient, "from_settings", classmethod(lambda cls, settings: client))

    assert run.main(["loop", "--max-iterations", "2"]) == 1
    assert client.send.call_count == 2


@pytest.fixture
def stub_client(recorded, monkeypatch):
    monkeypatch.setenv("AGENTIC_API_KEY", "test-key")
    client = MagicMock()
    client.send.return_value = DONE
    monkeypatch.setattr(ChatClient, "from_settings", classmethod(lambda cls, settings: client))
    return client


def test_unknown_tool_name_exits_2(recorded, stub_client):
    assert run.main(["do it", "--tools", "list_file"]) == 2
    assert "list_file" in recorded.export_text()
    stub_client.send.assert_not_called()


def test_missing_context_file_exits_2(recorded, stub_client, tmp_path):
    assert run.main(["do it", "--context-file", str(tmp_path / "missing.txt")]) == 2
    assert "Cannot read context file" in recorded.export_text()
    stub_client.send.assert_not_called()


def test_context_file_is_sent(stub_client, tmp_path):
    notes = tmp_path / "notes.txt"
    notes.write_text("project: demo")
    assert run.main(["do it", "--context-file", str(notes)]) == 0
    first = stub_client.send.call_args.args[0][0]
    assert first.text.startswith("CONTEXT:\nproject: demo")


def test_tools_and_preset_are_mutually_exclusive(recorded):
    with pytest.raises(SystemExit):
        run.main(["do it", "--tools", "read_file", "--preset", "read_only"])
