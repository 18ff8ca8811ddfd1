"""Tool handler registration keyed by tool ref."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from agentspec.spec.types import Access

ToolCallable = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass(slots=True)
class ToolDef:
    ref: str
    handler: ToolCallable
    # write-classified tools have side effects and are stubbed unless enabled
    access: Access = Access.READ

    @property
    def writes(self) -> bool:
        return self.access is Access.WRITE


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, ToolDef] = {}

    def register(self, ref: str, handler: ToolCallable, *, access: Access = Access.READ) -> None:
        self._tools[ref] = ToolDef(ref=ref, handler=handler, access=access)

    def get(self, ref: str) -> ToolDef | None:
        return self._tools.get(ref)
