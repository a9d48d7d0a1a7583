# prompts.py
# System prompt and the synthetic messages the engine writes into the transcript.

import json
from typing import Any

from agentic_task.registry import ToolRegistry

BLOCK_START = "<TOOL_DECISION>"
BLOCK_END = "</TOOL_DECISION>"
FINAL_ANSWER_ACTION = "final_answer"
DEFAULT_COMPLETION_TEXT = "Task completed successfully"

SYSTEM_PROMPT_TEMPLATE = """\
You are an expert software assistant working in: {working_dir}

You complete tasks by choosing tools one at a time. After each tool runs you \
will receive its result and may choose the next tool.

Available tools:
{tool_descriptions}

For EVERY reply, end with exactly one decision block in this format:

<TOOL_DECISION>
ACTION: <tool name>
INPUT: <JSON object with the tool parameters>
REASONING: <why this tool and these parameters>
STATUS: continue
</TOOL_DECISION>

When the task is finished, write your summary for the user and then:

<TOOL_DECISION>
ACTION: final_answer
INPUT: {{}}
REASONING: <one line on what was accomplished>
STATUS: done
</TOOL_DECISION>

Rules:
- Choose ONE tool per reply. Only the first decision block is read.
- INPUT must be a valid JSON object. Use {{}} when a tool takes no parameters.
- Use exact file paths relative to the working directory.
- You have {max_iterations} iterations to complete the task.\
"""

REFORMAT_REQUEST = """\
FORMAT ERROR: your last reply could not be read ({reason}).
Reply again with exactly one decision block:

<TOOL_DECISION>
ACTION: <tool name or final_answer>
INPUT: <JSON object>
REASONING: <text>
STATUS: <continue or done>
</TOOL_DECISION>\
"""


def build_system_prompt(tools: ToolRegistry, working_dir: str, max_iterations: int) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(
        working_dir=working_dir,
        tool_descriptions=tools.describe() or "- (none)",
        max_iterations=max_iterations,
    )


def build_task_message(task: str, context: str | None = None) -> str:
    if context:
        return f"CONTEXT:\n{context}\n\nTASK: {task}"
    return f"TASK: {task}"


def format_output(value: Any) -> str:
    """Render a tool's return value as transcript text."""
    if value is None:
        return "(no output)"
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return repr(value)


def result_message(tool: str, output: Any) -> str:
    return f"RESULT ({tool}):\n{format_output(output)}"


def error_message(tool: str, error: str) -> str:
    return f"ERROR ({tool}):\n{error}\n\nTry a different approach or adjust parameters."


def denied_message(tool: str, reason: str) -> str:
    return f"DENIED ({tool}): {reason}\nTry a different approach or ask for clarification."


def not_allowed_message(tool: str, allowed: list[str]) -> str:
    offered = ", ".join(allowed) if allowed else "(none)"
    return error_message(tool, f"Tool '{tool}' is not available for this task. Available tools: {offered}")


def reformat_message(reason: str) -> str:
    return REFORMAT_REQUEST.format(reason=reason or "no decision block found")
