# registry.py
# Tool registry: declarations for every tool the assistant may be offered.
# The engine and executor only ever reach tool functions through here.

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DuplicateToolError(Exception):
    """Raised when a tool name is registered twice."""


class ToolNotFoundError(Exception):
    """Raised when a lookup names a tool absent from the registry."""


class ToolError(Exception):
    """Raised by tool functions to report an expected failure to the assistant."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ---------------------------------------------------------------------------
# Specs
# ---------------------------------------------------------------------------

ParameterType = Literal["string", "integer", "number", "boolean", "object", "array", "any"]


class ParameterSpec(BaseModel):
    """Expected shape of one tool parameter."""

    model_config = ConfigDict(frozen=True)

    type: ParameterType = "string"
    description: str = ""
    required: bool = True


class ToolSpec(BaseModel):
    """
    A host-provided capability.

    `function` receives the validated input mapping and returns any value;
    it signals expected failures by raising ToolError.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1)
    description: str
    parameters: dict[str, ParameterSpec] = Field(default_factory=dict)
    function: Callable[[dict[str, Any]], Any]
    read_only: bool = Field(
        default=False,
        description="Read-only tools run without approval in safe mode.",
    )

    @property
    def required_parameters(self) -> list[str]:
        return [name for name, param in self.parameters.items() if param.required]

    def describe(self) -> str:
        """Render this tool for inclusion in the system prompt."""
        lines = [f"- {self.name}: {self.description}"]
        if self.parameters:
            for pname, param in self.parameters.items():
                optional = "" if param.required else ", optional"
                detail = f": {param.description}" if param.description else ""
                lines.append(f"    {pname} ({param.type}{optional}){detail}")
        else:
            lines.append("    (no parameters)")
        if not self.read_only:
            lines.append("    [mutating: may require approval]")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """
    Name-keyed map of ToolSpecs.

    Writable until freeze(); afterwards read-only, so concurrent task runs
    can share one instance without locking.
    """

    def __init__(self, specs: Iterable[ToolSpec] = ()) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._frozen = False
        for spec in specs:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if self._frozen:
            raise RuntimeError("Registry is frozen; tools can only be registered during setup.")
        if spec.name in self._tools:
            raise DuplicateToolError(f"Tool '{spec.name}' is already registered.")
        self._tools[spec.name] = spec
        logger.debug("Registered tool: %s (read_only=%s)", spec.name, spec.read_only)

    def freeze(self) -> "ToolRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, name: str) -> ToolSpec:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(f"Tool '{name}' is not registered.") from None

    def allowed_subset(self, names: Iterable[str] | None) -> "ToolRegistry":
        """
        Frozen view restricted to `names`, in registration order.

        None means every registered tool. Unknown names raise ToolNotFoundError
        so a typo never silently shrinks the offered tool set.
        """
        if names is None:
            wanted = set(self._tools)
        else:
            wanted = set(names)
            for name in wanted:
                self.lookup(name)
        subset = ToolRegistry(spec for name, spec in self._tools.items() if name in wanted)
        return subset.freeze()

    def names(self) -> list[str]:
        return list(self._tools)

    def describe(self) -> str:
        return "\n".join(spec.describe() for spec in self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
