# tools.py
# Built-in host tools: file system and project helpers for coding tasks.
# The engine reaches these only through a ToolRegistry; nothing here knows
# about the loop. Every path is resolved inside the working directory.

import fnmatch
import os
import re
import subprocess
import sys
from pathlib import Path
from typing import Any

from agentic_task.registry import ParameterSpec, ToolError, ToolRegistry, ToolSpec

MAX_READ_CHARS = 100_000
MAX_LIST_ENTRIES = 1_000
MAX_SEARCH_MATCHES = 200
CODE_TIMEOUT_SECONDS = 30
_SKIP_DIRS = {".git", "__pycache__", ".venv", "venv", "node_modules", ".mypy_cache", ".pytest_cache"}

PRESETS: dict[str, tuple[str, ...]] = {
    "read_only": ("read_file", "list_files", "search_files", "get_context"),
    "code_analysis": ("read_file", "list_files", "search_files", "get_context"),
    "code_generation": ("read_file", "list_files", "write_file", "get_context"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(root: Path, relative: str) -> Path:
    """Resolve `relative` under `root`, refusing anything that escapes it."""
    base = root.resolve()
    target = (base / relative).resolve()
    if target != base and base not in target.parents:
        raise ToolError(f"SECURITY BLOCK: path '{relative}' escapes the working directory.")
    return target


def _walk(directory: Path):
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
        for filename in sorted(filenames):
            yield Path(dirpath) / filename


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------


def _list_files(root: Path, args: dict[str, Any]) -> str:
    directory = _resolve(root, args.get("directory") or ".")
    pattern = args.get("pattern")
    if not directory.is_dir():
        raise ToolError(f"Directory not found: {args.get('directory') or '.'}")

    files = []
    for path in _walk(directory):
        relative = path.relative_to(directory).as_posix()
        if pattern and not fnmatch.fnmatch(path.name, pattern) and not fnmatch.fnmatch(relative, pattern):
            continue
        files.append(relative)
        if len(files) >= MAX_LIST_ENTRIES:
            files.append(f"... (truncated at {MAX_LIST_ENTRIES} entries)")
            break

    return "\n".join(files) if files else "No files found"


def _read_file(root: Path, args: dict[str, Any]) -> str:
    path = _resolve(root, args["filepath"])
    if not path.is_file():
        raise ToolError(f"File not found: {args['filepath']}")
    text = path.read_text(encoding="utf-8", errors="replace")
    if len(text) > MAX_READ_CHARS:
        return text[:MAX_READ_CHARS] + f"\n... (truncated, {len(text)} characters total)"
    return text


def _write_file(root: Path, args: dict[str, Any]) -> str:
    path = _resolve(root, args["filepath"])
    content = args.get("content", "")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return f"File written successfully: {path.relative_to(root.resolve()).as_posix()} ({len(content)} characters)"


def _search_files(root: Path, args: dict[str, Any]) -> str:
    directory = _resolve(root, args.get("directory") or ".")
    if not directory.is_dir():
        raise ToolError(f"Directory not found: {args.get('directory') or '.'}")
    try:
        regex = re.compile(args["pattern"])
    except re.error as exc:
        raise ToolError(f"Invalid search pattern: {exc}") from exc
    file_pattern = args.get("file_pattern")

    sections = []
    total = 0
    for path in _walk(directory):
        if file_pattern and not fnmatch.fnmatch(path.name, file_pattern):
            continue
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError):
            continue
        hits = [f"  {number}: {line}" for number, line in enumerate(lines, 1) if regex.search(line)]
        if hits:
            sections.append("\n".join([f"File: {path.relative_to(directory).as_posix()}", *hits]))
            total += len(hits)
        if total >= MAX_SEARCH_MATCHES:
            sections.append(f"... (stopped after {MAX_SEARCH_MATCHES} matches)")
            break

    return "\n\n".join(sections) if sections else "No matches found"


def _get_context(root: Path, args: dict[str, Any]) -> str:
    level = args.get("level") or "standard"
    depth = {"minimal": 1, "standard": 2, "comprehensive": None}.get(level)
    if level not in ("minimal", "standard", "comprehensive"):
        raise ToolError(f"Unknown context level '{level}'. Use minimal, standard or comprehensive.")

    base = root.resolve()
    lines = [f"Project: {base.name}", f"Working directory: {base}", "", "Layout:"]
    for path in _walk(base):
        relative = path.relative_to(base)
        if depth is not None and len(relative.parts) > depth:
            continue
        lines.append(f"  {relative.as_posix()}")
        if len(lines) > MAX_LIST_ENTRIES:
            lines.append("  ...")
            break

    if level != "minimal":
        for name in ("README.md", "README.rst", "README.txt", "pyproject.toml"):
            candidate = base / name
            if candidate.is_file():
                head = candidate.read_text(encoding="utf-8", errors="replace").splitlines()[:40]
                lines.extend(["", f"--- {name} (first {len(head)} lines) ---", *head])
    return "\n".join(lines)


def _execute_code(root: Path, args: dict[str, Any]) -> str:
    try:
        completed = subprocess.run(
            [sys.executable, "-c", args["code"]],
            cwd=root,
            capture_output=True,
            text=True,
            timeout=CODE_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired as exc:
        raise ToolError(f"Code execution timed out after {CODE_TIMEOUT_SECONDS}s") from exc

    output = completed.stdout.strip()
    if completed.returncode != 0:
        raise ToolError(f"Code execution error (exit {completed.returncode}):\n{completed.stderr.strip()}")
    parts = [f"Output:\n{output}" if output else "Output: (none)"]
    if completed.stderr.strip():
        parts.append(f"Stderr:\n{completed.stderr.strip()}")
    return "\n".join(parts)


# ---------------------------------------------------------------------------
# Registry wiring
# ---------------------------------------------------------------------------


def default_tools(working_dir: str | Path) -> list[ToolSpec]:
    """Build the built-in tool specs bound to `working_dir`."""
    root = Path(working_dir)

    def bind(fn):
        return lambda args: fn(root, args)

    return [
        ToolSpec(
            name="read_file",
            description="Read the contents of a text file",
            parameters={"filepath": ParameterSpec(description="Path to the file, relative to the working directory")},
            function=bind(_read_file),
            read_only=True,
        ),
        ToolSpec(
            name="list_files",
            description="List files recursively in a directory",
            parameters={
                "directory": ParameterSpec(description="Directory to list (default: .)", required=False),
                "pattern": ParameterSpec(description="Glob pattern such as *.py", required=False),
            },
            function=bind(_list_files),
            read_only=True,
        ),
        ToolSpec(
            name="search_files",
            description="Search file contents for a regular expression",
            parameters={
                "pattern": ParameterSpec(description="Regular expression to search for"),
                "directory": ParameterSpec(description="Directory to search (default: .)", required=False),
                "file_pattern": ParameterSpec(description="Glob limiting which files are searched", required=False),
            },
            function=bind(_search_files),
            read_only=True,
        ),
        ToolSpec(
            name="get_context",
            description="Get an overview of the project layout and key files",
            parameters={
                "level": ParameterSpec(description="'minimal', 'standard' or 'comprehensive'", required=False),
            },
            function=bind(_get_context),
            read_only=True,
        ),
        ToolSpec(
            name="write_file",
            description="Write content to a file, creating directories as needed",
            parameters={
                "filepath": ParameterSpec(description="Path to the file, relative to the working directory"),
                "content": ParameterSpec(description="Full file content"),
            },
            function=bind(_write_file),
        ),
        ToolSpec(
            name="execute_code",
            description="Execute a Python snippet in a subprocess and return its output",
            parameters={"code": ParameterSpec(description="Python source to run")},
            function=bind(_execute_code),
        ),
    ]


def default_registry(working_dir: str | Path) -> ToolRegistry:
    return ToolRegistry(default_tools(working_dir))


def tool_preset(name: str, registry: ToolRegistry | None = None) -> list[str]:
    """Tool names for a preset; 'all' means every tool in `registry`."""
    if name == "all":
        if registry is None:
            raise ValueError("The 'all' preset needs a registry to enumerate.")
        return registry.names()
    try:
        return list(PRESETS[name])
    except KeyError:
        choices = ", ".join(["all", *PRESETS])
        raise ValueError(f"Unknown preset '{name}'. Choose one of: {choices}") from None
