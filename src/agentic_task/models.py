# models.py
# Data contracts for the agentic task engine.
# No business logic lives here, only schema and validation.

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


class Message(BaseModel):
    """A single transcript entry. Never mutated once appended."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str
    tool: str | None = Field(default=None, description="Tool name for tool_result messages.")
    is_error: bool = Field(default=False, description="True for failed, denied or disallowed calls.")


# ---------------------------------------------------------------------------
# Tool decisions
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """The assistant asked for one tool to be run."""

    kind: Literal["tool_call"] = "tool_call"
    action: str
    input: dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    inferred: bool = Field(
        default=False,
        description="True when recovered by the lenient JSON scan instead of a decision block.",
    )


class FinalAnswer(BaseModel):
    """The assistant declared the task complete."""

    kind: Literal["final_answer"] = "final_answer"
    text: str


class Unparseable(BaseModel):
    """No usable decision could be extracted; raw text kept for diagnostics."""

    kind: Literal["unparseable"] = "unparseable"
    raw: str
    reason: str = ""


ToolDecision = Annotated[Union[ToolCall, FinalAnswer, Unparseable], Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# Approval and execution
# ---------------------------------------------------------------------------


class ApprovalVerdict(BaseModel):
    """Outcome of the approval gate for one tool call."""

    approved: bool
    input: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None
    requires_approval: bool = Field(
        default=False,
        description="Set when safe mode blocked a mutating call for lack of a callback.",
    )


class ToolResult(BaseModel):
    """Immutable record of one tool execution."""

    model_config = ConfigDict(frozen=True)

    tool: str
    success: bool
    output: Any = None
    error: str | None = None
    elapsed: float = Field(default=0.0, description="Wall-clock seconds spent in the tool.")


class ActionRecord(BaseModel):
    """Log entry for an executed tool call, kept on the outcome."""

    iteration: int
    action: str
    input: dict[str, Any]
    success: bool
    elapsed: float = 0.0


# ---------------------------------------------------------------------------
# Loop state and outcomes
# ---------------------------------------------------------------------------


class LoopState(str, Enum):
    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    MAX_ITERATIONS_EXCEEDED = "max_iterations_exceeded"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    TRANSPORT = "transport"
    AUTHENTICATION = "authentication"
    CANCELLED = "cancelled"


class _OutcomeBase(BaseModel):
    task: str
    transcript: list[Message]
    iterations: int
    actions: list[ActionRecord] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return False


class Completed(_OutcomeBase):
    kind: Literal["completed"] = "completed"
    final_text: str

    @property
    def succeeded(self) -> bool:
        return True


class MaxIterationsExceeded(_OutcomeBase):
    kind: Literal["max_iterations_exceeded"] = "max_iterations_exceeded"


class Aborted(_OutcomeBase):
    kind: Literal["aborted"] = "aborted"
    reason: AbortReason
    detail: str = ""


TaskOutcome = Annotated[
    Union[Completed, MaxIterationsExceeded, Aborted], Field(discriminator="kind")
]
