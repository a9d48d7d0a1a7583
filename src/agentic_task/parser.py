# parser.py
# Decision parser: turns raw assistant text into exactly one ToolDecision.
#
# Parsing is a fallback chain, strictest first:
#   1. <TOOL_DECISION> block with ACTION / INPUT / REASONING / STATUS fields
#   2. heuristic scan for a JSON object shaped like a tool call
#   3. "TASK COMPLETE" shorthand at the start of a line
# Each step returns None to hand over to the next one. If every step passes,
# the reply is Unparseable. The parser never raises and holds no state.

import json
import logging
import re
from collections.abc import Callable, Iterable

from agentic_task.models import FinalAnswer, ToolCall, ToolDecision, Unparseable
from agentic_task.prompts import DEFAULT_COMPLETION_TEXT, FINAL_ANSWER_ACTION

logger = logging.getLogger(__name__)

_BLOCK_PATTERN = re.compile(
    r"<TOOL_DECISION>(?P<body>.*?)(?:</TOOL_DECISION>|\Z)", re.DOTALL | re.IGNORECASE
)
_FIELD_PATTERN = re.compile(
    r"^[ \t]*(?P<label>ACTION|INPUT|REASONING|STATUS)[ \t]*:", re.MULTILINE | re.IGNORECASE
)
_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(?P<inner>.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_COMPLETION_PATTERN = re.compile(r"^[ \t]*TASK[ _]COMPLETED?\b[ \t]*:?(?P<rest>.*)", re.DOTALL | re.MULTILINE)
_FENCE_OPEN_PATTERN = re.compile(r"```[A-Za-z]*[ \t]*\n?")

_TERMINAL_STATUSES = {"done", "final", "complete", "completed"}
_FINAL_ACTIONS = {FINAL_ANSWER_ACTION, "none"}
_NAME_KEYS = ("action", "tool", "name")
_INPUT_KEYS = ("input", "args", "arguments", "parameters")

FallbackStep = Callable[[str, frozenset[str] | None], ToolDecision | None]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extract_fields(block: str) -> dict[str, str]:
    """
    Split a decision block into its labelled fields.

    A field's value runs until the next label at the start of a line, so
    values may span lines and contain colons. An INPUT that decodes as a
    JSON object is skipped whole, so lines inside it that look like labels
    stay part of the value. The first occurrence of a label wins; missing
    labels are absent from the result.
    """
    fields: dict[str, str] = {}
    match = _FIELD_PATTERN.search(block)
    while match:
        label = match.group("label").upper()
        resume = match.end()
        if label == "INPUT":
            resume = _json_span_end(block, resume) or resume
        following = _FIELD_PATTERN.search(block, resume)
        end = following.start() if following else len(block)
        if label not in fields:
            fields[label] = block[match.end():end].strip()
        match = following
    return fields


def _json_span_end(block: str, start: int) -> int | None:
    """End offset of a (possibly fenced) JSON object starting at `start`, or None."""
    position = _skip_whitespace(block, start)
    fence = _FENCE_OPEN_PATTERN.match(block, position)
    if fence:
        position = _skip_whitespace(block, fence.end())
    try:
        _, end = json.JSONDecoder(strict=False).raw_decode(block, position)
    except json.JSONDecodeError:
        return None
    if fence:
        closing = _skip_whitespace(block, end)
        if block.startswith("```", closing):
            end = closing + 3
    return end


def _skip_whitespace(text: str, position: int) -> int:
    while position < len(text) and text[position].isspace():
        position += 1
    return position


def _parse_input(raw: str) -> dict:
    """Parse an INPUT value. Raises ValueError when it is not a JSON object."""
    raw = raw.strip()
    if not raw:
        return {}

    fenced = _FENCE_PATTERN.match(raw)
    if fenced:
        raw = fenced.group("inner")

    try:
        value = json.loads(raw, strict=False)
    except json.JSONDecodeError as exc:
        raise ValueError(f"INPUT is not valid JSON: {exc.msg}") from exc

    if not isinstance(value, dict):
        raise ValueError(f"INPUT must be a JSON object, got {type(value).__name__}")
    return value


def _clean_action(raw: str) -> str:
    first_line = raw.strip().splitlines()[0] if raw.strip() else ""
    return first_line.strip().strip("`'\"").strip()


# ---------------------------------------------------------------------------
# Fallback chain steps
# ---------------------------------------------------------------------------


def parse_decision_block(text: str, known_tools: frozenset[str] | None = None) -> ToolDecision | None:
    """Strict pass: read the first <TOOL_DECISION> block, if any."""
    match = _BLOCK_PATTERN.search(text)
    if not match:
        return None

    fields = extract_fields(match.group("body"))
    action = _clean_action(fields.get("ACTION", ""))
    reasoning = fields.get("REASONING", "")
    status_words = fields.get("STATUS", "").split()
    status = status_words[0].strip(".!`'\"").lower() if status_words else ""

    if status in _TERMINAL_STATUSES or action.lower() in _FINAL_ACTIONS:
        outside = (text[: match.start()] + text[match.end():]).strip()
        return FinalAnswer(text=outside or reasoning or DEFAULT_COMPLETION_TEXT)

    if not action:
        return Unparseable(raw=text, reason="decision block has no ACTION")

    try:
        tool_input = _parse_input(fields.get("INPUT", ""))
    except ValueError as exc:
        logger.warning("Failed to parse INPUT for action %r: %s", action, exc)
        return Unparseable(raw=text, reason=str(exc))

    return ToolCall(action=action, input=tool_input, reasoning=reasoning)


def parse_completion_marker(text: str, known_tools: frozenset[str] | None = None) -> ToolDecision | None:
    """Last pass: a line opening with TASK COMPLETE, upper case, outside any block."""
    match = _COMPLETION_PATTERN.search(text)
    if not match:
        return None
    rest = match.group("rest").strip()
    return FinalAnswer(text=rest or DEFAULT_COMPLETION_TEXT)


def scan_json_tool_call(text: str, known_tools: frozenset[str] | None = None) -> ToolDecision | None:
    """
    Heuristic pass: find a JSON object shaped like a tool call anywhere in text.

    Only names among `known_tools` are trusted; anything else is too weak a
    signal and the chain moves on.
    """
    decoder = json.JSONDecoder(strict=False)
    position = text.find("{")
    while position != -1:
        try:
            candidate, _ = decoder.raw_decode(text, position)
        except json.JSONDecodeError:
            candidate = None

        if isinstance(candidate, dict):
            name = next((candidate[k] for k in _NAME_KEYS if isinstance(candidate.get(k), str)), None)
            tool_input = next((candidate[k] for k in _INPUT_KEYS if isinstance(candidate.get(k), dict)), None)
            if name and tool_input is not None:
                if known_tools is None or name in known_tools:
                    logger.info("Recovered tool call %r from unstructured reply", name)
                    reasoning = candidate.get("reasoning")
                    return ToolCall(
                        action=name,
                        input=tool_input,
                        reasoning=reasoning if isinstance(reasoning, str) else "Inferred from unstructured reply",
                        inferred=True,
                    )
                logger.debug("Ignoring JSON tool call for unknown tool %r", name)

        position = text.find("{", position + 1)
    return None


DEFAULT_CHAIN: tuple[FallbackStep, ...] = (
    parse_decision_block,
    scan_json_tool_call,
    parse_completion_marker,
)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_decision(
    text: str,
    known_tools: Iterable[str] | None = None,
    chain: tuple[FallbackStep, ...] = DEFAULT_CHAIN,
) -> ToolDecision:
    """
    Extract one decision from an assistant reply.

    `known_tools` limits what the heuristic JSON scan may recover; the
    strict block pass reports whatever ACTION it finds and leaves the
    allowed-tool check to the caller.
    """
    if not text or not text.strip():
        return Unparseable(raw=text or "", reason="empty reply")

    normalized = text.replace("\r\n", "\n")
    tools = frozenset(known_tools) if known_tools is not None else None

    for step in chain:
        decision = step(normalized, tools)
        if decision is not None:
            return decision

    return Unparseable(raw=text, reason="no decision block found")
