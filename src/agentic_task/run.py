# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Reads Settings from the environment / .env, builds the built-in tool
# registry, and runs one task from the command line.

import argparse
import logging
import sys
from pathlib import Path

from rich.logging import RichHandler

from agentic_task import display
from agentic_task.client import ChatClient
from agentic_task.config import ConfigurationError, Settings
from agentic_task.engine import TaskEngine
from agentic_task.models import Completed
from agentic_task.registry import ToolNotFoundError
from agentic_task.tools import PRESETS, default_registry, tool_preset


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentic-task",
        description="Delegate a task to a remote assistant that works through local tools.",
    )
    parser.add_argument("task", nargs="?", help="Task description.")
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--tools", nargs="+", metavar="NAME", help="Tools to offer (default: all).")
    selection.add_argument("--preset", choices=["all", *PRESETS], help="Named tool set.")
    parser.add_argument("--max-iterations", type=int, help="Iteration budget.")
    parser.add_argument("--no-safe-mode", action="store_true", help="Run mutating tools without approval.")
    parser.add_argument("--interactive", action="store_true", help="Ask on the terminal before every tool call.")
    parser.add_argument("--context-file", type=Path, help="File whose text is given to the assistant as context.")
    parser.add_argument("--working-dir", type=Path, help="Directory the tools operate in.")
    parser.add_argument("--list-tools", action="store_true", help="Show the available tools and exit.")
    parser.add_argument("--verbose", action="store_true", help="Render progress and debug logging.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()

    engine_config = settings.engine
    overrides = {}
    if args.working_dir:
        overrides["working_dir"] = args.working_dir
    if args.verbose:
        overrides["verbose"] = True
    if overrides:
        engine_config = engine_config.model_copy(update=overrides)

    logging.basicConfig(
        level=logging.DEBUG if engine_config.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=display.console, show_path=False)],
    )

    registry = default_registry(engine_config.working_dir)

    if args.list_tools:
        display.tool_table(registry)
        return 0
    if not args.task:
        build_parser().error("a task is required unless --list-tools is given")

    try:
        client = ChatClient.from_settings(settings)
    except ConfigurationError as exc:
        display.halt(str(exc))
        return 2

    allowed = tool_preset(args.preset, registry) if args.preset else args.tools

    try:
        context = args.context_file.read_text(encoding="utf-8") if args.context_file else None
    except OSError as exc:
        display.halt(f"Cannot read context file: {exc}")
        return 2

    engine = TaskEngine(client, registry, engine_config)
    try:
        outcome = engine.run_task(
            args.task,
            context=context,
            allowed_tools=allowed,
            max_iterations=args.max_iterations,
            safe_mode=False if args.no_safe_mode else None,
            approval_callback=display.console_approval(registry) if args.interactive else None,
        )
    except (ToolNotFoundError, ValueError) as exc:
        display.halt(str(exc))
        return 2

    if not engine_config.verbose:
        display.outcome_summary(outcome)
    return 0 if isinstance(outcome, Completed) else 1


if __name__ == "__main__":
    sys.exit(main())
