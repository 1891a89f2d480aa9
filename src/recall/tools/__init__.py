"""
Auto-discovery & registry for retrieval tools.

Any module inside ``tools/handlers`` that defines::

    from recall.tools import register_tool, Tool, ToolSpec

    @register_tool(ToolSpec(...))
    class MyTool(Tool):
        async def run(self, *, context, **kwargs): ...

is picked up automatically at import-time. Consumers (an LLM tool-calling
loop, a chat command) advertise the registered specs and execute calls via
:func:`recall.tools.executor.execute_tool`.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from pkgutil import iter_modules
from typing import Any, Dict, Iterable, List, Type

from recall.errors import RetrievalError
from recall.store import Scope

__all__ = [
    "Tool",
    "ToolContext",
    "ToolResult",
    "ToolSpec",
    "build_tool_prompt",
    "get_registered_tool_specs",
    "get_tool_entry",
    "register_tool",
]


@dataclass(slots=True)
class ToolSpec:
    """Static description of a tool exposed to the LLM."""

    name: str
    description: str
    parameters: Dict[str, Any]

    def to_openai(self) -> Dict[str, Any]:
        """Return this spec formatted for OpenAI function calling."""

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(slots=True)
class ToolContext:
    """Where the call came from: the message being serviced."""

    guild_id: int | str | None
    channel_id: int | str | None
    user_id: int | str | None = None
    message_id: int | str | None = None

    def scope(self) -> Scope:
        """Channel/guild scope of the conversation (user excluded)."""

        def _s(v):
            return None if v is None else str(v)

        return Scope(channel_id=_s(self.channel_id), guild_id=_s(self.guild_id))


@dataclass(slots=True)
class ToolResult:
    """Normalized tool output: ``data`` on success, ``error`` payload otherwise."""

    success: bool
    data: Dict[str, Any] | None = None
    error: Dict[str, Any] | None = None

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, exc: RetrievalError) -> "ToolResult":
        return cls(success=False, error=exc.to_payload())

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


class Tool:
    """Base class for concrete tool handlers."""

    spec: ToolSpec

    def __init__(self, retrieval) -> None:
        self.retrieval = retrieval

    async def run(self, *, context: ToolContext, **kwargs: Any) -> ToolResult:
        """Execute the tool and return a :class:`ToolResult`."""

        raise NotImplementedError


_registry: dict[str, Type[Tool]] = {}
_HANDLERS_IMPORTED = False


def register_tool(spec: ToolSpec):
    """Class decorator that binds ``spec`` to the decorated :class:`Tool`."""

    def decorator(cls: Type[Tool]) -> Type[Tool]:
        if not issubclass(cls, Tool):
            raise TypeError("register_tool expects a Tool subclass")
        if spec.name in _registry:
            raise ValueError(f"Tool with name '{spec.name}' already registered")
        cls.spec = spec
        _registry[spec.name] = cls
        return cls

    return decorator


def get_registered_tool_specs() -> List[ToolSpec]:
    return [entry.spec for entry in _registry.values()]


def get_tool_entry(name: str) -> Type[Tool] | None:
    return _registry.get(name)


def build_tool_prompt(specs: Iterable[ToolSpec]) -> str:
    """Render a succinct Markdown description of available tools."""

    lines = ["### Tools", "The assistant can call these tools when helpful:"]
    for spec in specs:
        lines.append(f"- **{spec.name}**: {spec.description}")
    return "\n".join(lines)


def _import_handlers() -> None:
    """Import every handler module exactly once."""

    global _HANDLERS_IMPORTED
    if _HANDLERS_IMPORTED:
        return

    pkg_path = Path(__file__).resolve().parent / "handlers"
    for _, modname, _ in iter_modules([str(pkg_path)]):
        if modname.startswith("_"):
            continue
        import_module(f"{__name__}.handlers.{modname}")

    _HANDLERS_IMPORTED = True


_import_handlers()
