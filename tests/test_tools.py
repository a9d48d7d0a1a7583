import pytest

from agentic_task.executor import ToolExecutor
from agentic_task.models import ToolCall
from agentic_task.registry import ToolError
from agentic_task.tools import (
    PRESETS,
    _execute_code,
    _get_context,
    _list_files,
    _read_file,
    _search_files,
    _write_file,
    default_registry,
    tool_preset,
)


@pytest.fixture
def project(tmp_path):
    (tmp_path / "R").mkdir()
    (tmp_path / "R" / "model.R").write_text("fit <- lm(y ~ x)\n")
    (tmp_path / "R" / "plot.R").write_text("plot(fit)\n")
    (tmp_path / "main.py").write_text("import os\nprint('hello')\n")
    (tmp_path / "README.md").write_text("# Demo project\n")
    (tmp_path / "__pycache__").mkdir()
    (tmp_path / "__pycache__" / "main.cpython.pyc").write_bytes(b"\x00")
    return tmp_path


# ---------------------------------------------------------------------------
# list_files / read_file
# ---------------------------------------------------------------------------


def test_list_files_with_pattern(project):
    assert _list_files(project, {"pattern": "*.R"}) == "R/model.R\nR/plot.R"


def test_list_files_skips_cache_dirs(project):
    listing = _list_files(project, {})
    assert "main.py" in listing
    assert "__pycache__" not in listing


def test_list_files_missing_directory(project):
    with pytest.raises(ToolError, match="Directory not found"):
        _list_files(project, {"directory": "nope"})


def test_list_files_no_match(project):
    assert _list_files(project, {"pattern": "*.rs"}) == "No files found"


def test_read_file(project):
    assert _read_file(project, {"filepath": "main.py"}).startswith("import os")


def test_read_missing_file(project):
    with pytest.raises(ToolError, match="File not found: ghost.txt"):
        _read_file(project, {"filepath": "ghost.txt"})


# ---------------------------------------------------------------------------
# write_file and path confinement
# ---------------------------------------------------------------------------


def test_write_file_creates_directories(project):
    message = _write_file(project, {"filepath": "out/new.txt", "content": "abc"})
    assert (project / "out" / "new.txt").read_text() == "abc"
    assert message == "File written successfully: out/new.txt (3 characters)"


@pytest.mark.parametrize("bad_path", ["../escape.txt", "R/../../escape.txt", "/etc/passwd"])
def test_paths_outside_working_dir_are_blocked(project, bad_path):
    with pytest.raises(ToolError, match="SECURITY BLOCK"):
        _write_file(project, {"filepath": bad_path, "content": "x"})
    assert not (project.parent / "escape.txt").exists()


def test_read_outside_working_dir_is_blocked(project):
    with pytest.raises(ToolError, match="SECURITY BLOCK"):
        _read_file(project, {"filepath": "../../etc/passwd"})


# ---------------------------------------------------------------------------
# search_files / get_context
# ---------------------------------------------------------------------------


def test_search_files_reports_line_numbers(project):
    result = _search_files(project, {"pattern": r"fit"})
    assert "File: R/model.R\n  1: fit <- lm(y ~ x)" in result
    assert "File: R/plot.R\n  1: plot(fit)" in result
    assert "main.py" not in result


def test_search_files_file_pattern(project):
    result = _search_files(project, {"pattern": "print", "file_pattern": "*.R"})
    assert result == "No matches found"


def test_search_files_bad_regex(project):
    with pytest.raises(ToolError, match="Invalid search pattern"):
        _search_files(project, {"pattern": "("})


def test_get_context_levels(project):
    minimal = _get_context(project, {"level": "minimal"})
    assert "  main.py" in minimal
    assert "R/model.R" not in minimal
    assert "README.md (first" not in minimal

    standard = _get_context(project, {})
    assert "R/model.R" in standard
    assert "# Demo project" in standard


def test_get_context_unknown_level(project):
    with pytest.raises(ToolError, match="Unknown context level"):
        _get_context(project, {"level": "everything"})


# ---------------------------------------------------------------------------
# execute_code
# ---------------------------------------------------------------------------


def test_execute_code_captures_stdout(project):
    assert _execute_code(project, {"code": "print(6 * 7)"}) == "Output:\n42"


def test_execute_code_runs_in_working_dir(project):
    assert "main.py" in _execute_code(project, {"code": "import os; print(sorted(os.listdir('.')))"})


def test_execute_code_failure(project):
    with pytest.raises(ToolError, match="Code execution error") as excinfo:
        _execute_code(project, {"code": "raise SystemExit('bad')"})
    assert "bad" in excinfo.value.message


# ---------------------------------------------------------------------------
# Registry wiring and presets
# ---------------------------------------------------------------------------


def test_default_registry_flags_mutating_tools(project):
    registry = default_registry(project)
    mutating = [spec.name for spec in registry if not spec.read_only]
    assert sorted(mutating) == ["execute_code", "write_file"]
    assert len(registry) == 6


def test_registry_tools_run_through_executor(project):
    executor = ToolExecutor(default_registry(project).freeze())
    result = executor.execute(ToolCall(action="list_files", input={"pattern": "*.R"}))
    assert result.success
    assert result.output == "R/model.R\nR/plot.R"


def test_presets_name_registered_tools(project):
    registry = default_registry(project)
    for name in PRESETS:
        assert set(tool_preset(name)) <= set(registry.names())
    assert "write_file" not in tool_preset("read_only")
    assert tool_preset("all", registry) == registry.names()


def test_unknown_preset():
    with pytest.raises(ValueError, match="Unknown preset"):
        tool_preset("everything")
    with pytest.raises(ValueError):
        tool_preset("all")
