# display.py
# All terminal output for the agentic task engine.
#
# This module owns presentation entirely. engine.py never formats strings;
# it calls named functions here, and only when verbose output is configured.
#
# Colour language:
#   cyan   : loop / routing events
#   blue   : assistant replies
#   yellow : approval and iteration-budget checkpoints
#   green  : success / completion
#   red    : failures, denials, halts
#   magenta: decision internals (Action / Input / Reasoning)

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from agentic_task.models import ApprovalVerdict, Completed, ToolCall, ToolResult
from agentic_task.prompts import format_output
from agentic_task.registry import ToolRegistry

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def _json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


# ---------------------------------------------------------------------------
# Task lifecycle
# ---------------------------------------------------------------------------


def task_started(task: str, tools: list[str], safe_mode: bool, max_iterations: int) -> None:
    console.print()
    console.print(Rule("[cyan]NEW TASK[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{task}[/white]\n\n"
            f"[dim]Tools          :[/dim] [white]{', '.join(tools) or '(none)'}[/white]\n"
            f"[dim]Safe mode      :[/dim] [white]{safe_mode}[/white]\n"
            f"[dim]Max iterations :[/dim] [white]{max_iterations}[/white]",
            title=_label("TASK", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def iteration_start(iteration: int, max_iterations: int) -> None:
    console.print()
    console.print(Rule(f"[cyan]ITERATION {iteration}/{max_iterations}[/cyan]", style="cyan"))
    console.print(_label("ENGINE", "cyan"), "[cyan] → Consulting assistant…[/cyan]")


def assistant_reply(reply: str) -> None:
    console.print(f"  [blue]Reply[/blue]    [dim white]{_mono(reply.strip(), 300)}[/dim white]")


def decision(call: ToolCall) -> None:
    source = " [dim](inferred)[/dim]" if call.inferred else ""
    console.print(f"  [magenta]Action[/magenta]   [bold white]{call.action}[/bold white]{source}")
    console.print(f"  [magenta]Input[/magenta]    [dim]{_mono(json.dumps(call.input, default=str), 200)}[/dim]")
    if call.reasoning:
        console.print(f"  [magenta]Reason[/magenta]   [dim white]{_mono(call.reasoning, 200)}[/dim white]")


def unparseable(reason: str) -> None:
    console.print(
        _label("PARSE", "yellow"),
        f"[yellow] Reply could not be read ({reason}). Asking the assistant to reformat.[/yellow]",
    )


def tool_not_allowed(tool_name: str) -> None:
    console.print(
        Panel(
            f"[bold red]Tool [white]{tool_name!r}[/white] is not available for this task.[/bold red]\n"
            "[dim]The error was returned to the assistant so it can choose again.[/dim]",
            title=_label("TOOL NOT ALLOWED ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def approval_denied(tool_name: str, reason: str) -> None:
    console.print(
        Panel(
            f"[bold red]{tool_name}[/bold red] was not approved.\n\n[white]{reason}[/white]",
            title=_label("APPROVAL: DENIED ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def tool_result(result: ToolResult) -> None:
    if result.success:
        console.print(
            f"  [bold green]✓ {result.tool}[/bold green] [dim]({result.elapsed:.2f}s)[/dim]  "
            f"[white]{_mono(format_output(result.output), 140)}[/white]"
        )
    else:
        console.print(
            f"  [bold red]✗ {result.tool}[/bold red] [dim]({result.elapsed:.2f}s)[/dim]  "
            f"[red]{_mono(result.error or '', 200)}[/red]"
        )


def max_iterations_reached(max_iterations: int) -> None:
    console.print()
    console.print(
        _label("BUDGET", "yellow"),
        f"[yellow] Max iterations ({max_iterations}) reached without a final answer.[/yellow]",
    )


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{reason}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


def outcome_summary(outcome: Any) -> None:
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Iteration", justify="center", width=10)
    table.add_column("Action", width=16)
    table.add_column("OK", justify="center", width=4)
    table.add_column("Input", style="dim white")

    for index, action in enumerate(outcome.actions, 1):
        ok = "[bold green]✓[/bold green]" if action.success else "[bold red]✗[/bold red]"
        table.add_row(
            str(index),
            str(action.iteration),
            action.action,
            ok,
            _mono(json.dumps(action.input, default=str), 60),
        )

    if isinstance(outcome, Completed):
        body, color, title = f"[white]{outcome.final_text}[/white]", "green", "COMPLETED ✓"
    elif outcome.kind == "max_iterations_exceeded":
        body, color, title = "[yellow]Task incomplete (max iterations reached)[/yellow]", "yellow", "INCOMPLETE"
    else:
        body, color, title = f"[red]{outcome.reason.value}: {outcome.detail}[/red]", "red", "ABORTED ✗"

    console.print(
        Panel(
            body,
            title=_label(title, color),
            subtitle=f"[dim]{outcome.iterations} iteration(s), {len(outcome.actions)} action(s)[/dim]",
            border_style=color,
            padding=(1, 2),
        )
    )
    if outcome.actions:
        console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# Tool listing
# ---------------------------------------------------------------------------


def tool_table(registry: ToolRegistry) -> None:
    table = Table(box=box.SIMPLE_HEAVY, header_style="bold cyan", padding=(0, 1))
    table.add_column("Tool", style="bold white")
    table.add_column("Description", style="white")
    table.add_column("Parameters", style="dim white")
    table.add_column("Safe mode", justify="center")

    for spec in registry:
        params = ", ".join(
            name if param.required else f"[{name}]" for name, param in spec.parameters.items()
        )
        gate = "[green]auto[/green]" if spec.read_only else "[yellow]requires approval[/yellow]"
        table.add_row(spec.name, spec.description, params or "-", gate)

    console.print(
        Panel(
            table,
            title=_label(f"AVAILABLE TOOLS ({len(registry)})", "cyan"),
            border_style="cyan",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Interactive approval (host-side callback)
# ---------------------------------------------------------------------------


def _show_tool_details(registry: ToolRegistry, action: str, tool_input: dict[str, Any]) -> None:
    if action not in registry:
        console.print(f"[yellow]Tool not found: {action}[/yellow]")
        return
    spec = registry.lookup(action)
    console.print(f"[bold]Tool details: {action}[/bold]")
    console.print(f"  Description: [italic]{spec.description}[/italic]")
    console.print(f"  Read-only:   {spec.read_only}")
    for name, param in spec.parameters.items():
        required = "required" if param.required else "optional"
        console.print(f"  • [cyan]{name}[/cyan] ({param.type}, {required}) {param.description}")
    console.print(Syntax(_json(tool_input), "json", theme="ansi_dark"))


def _edit_input(tool_input: dict[str, Any]) -> dict[str, Any]:
    while True:
        console.print("[dim]Enter new JSON, or press Enter to keep the current values.[/dim]")
        raw = Prompt.ask("New JSON", default="", show_default=False, console=console)
        if not raw.strip():
            return tool_input
        try:
            edited = json.loads(raw)
        except json.JSONDecodeError as exc:
            console.print(f"[red]Invalid JSON: {exc}[/red]")
            continue
        if isinstance(edited, dict):
            console.print("[green]Parameters updated[/green]")
            return edited
        console.print("[red]Input must be a JSON object.[/red]")


def console_approval(registry: ToolRegistry):
    """
    Build an approval callback that asks on the terminal.

    Choices: y(es) approves, n(o) denies, e(dit) replaces the input with
    new JSON and approves, v(iew) shows tool details and asks again.
    """

    def approve(action: str, tool_input: dict[str, Any], reasoning: str) -> ApprovalVerdict:
        console.print()
        console.print(Rule("[yellow]Agent action request[/yellow]", style="yellow"))
        console.print(f"[yellow]Action:[/yellow] [bold]{action}[/bold]")
        console.print(f"[yellow]Reasoning:[/yellow] [italic]{reasoning or '(none)'}[/italic]")
        console.print(Syntax(_json(tool_input), "json", theme="ansi_dark"))

        while True:
            choice = Prompt.ask(
                "[cyan]❯ Approve?[/cyan]",
                choices=["y", "n", "e", "v"],
                default="y",
                console=console,
            )
            if choice == "n":
                console.print("[red]Action denied[/red]")
                return ApprovalVerdict(approved=False, input=tool_input, reason="denied by user")
            if choice == "v":
                _show_tool_details(registry, action, tool_input)
                continue
            if choice == "e":
                return ApprovalVerdict(approved=True, input=_edit_input(tool_input))
            console.print("[green]Action approved[/green]")
            return ApprovalVerdict(approved=True, input=tool_input)

    return approve
