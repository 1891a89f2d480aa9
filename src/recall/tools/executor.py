"""Tool execution helpers."""

from __future__ import annotations

import json
import logging
from typing import Any

from recall.errors import ExecutionError, InvalidParametersError, RetrievalError

from . import ToolContext, ToolResult, get_tool_entry

logger = logging.getLogger(__name__)


async def execute_tool(
    name: str,
    arguments: str | dict[str, Any] | None,
    *,
    context: ToolContext,
    retrieval,
) -> ToolResult:
    """
    Execute the registered tool ``name`` with ``arguments``.

    ``arguments`` may be a JSON string (as provided by OpenAI) or a parsed
    mapping. Failures never raise; they come back as a failed
    :class:`ToolResult` whose error payload tells the caller whether a retry
    can help.
    """

    entry = get_tool_entry(name)
    if entry is None:
        return ToolResult.failure(InvalidParametersError(f"Unknown tool '{name}'"))

    if isinstance(arguments, str):
        try:
            parsed_args = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError as exc:
            return ToolResult.failure(InvalidParametersError(f"Invalid JSON arguments for tool '{name}': {exc}"))
    else:
        parsed_args = arguments or {}
    if not isinstance(parsed_args, dict):
        return ToolResult.failure(InvalidParametersError(f"Arguments for tool '{name}' must be an object"))

    tool = entry(retrieval)
    try:
        return await tool.run(context=context, **parsed_args)
    except RetrievalError as exc:
        logger.info("Tool '%s' failed: %s (%s)", name, exc.message, exc.type)
        return ToolResult.failure(exc)
    except TypeError as exc:
        return ToolResult.failure(InvalidParametersError(str(exc)))
    except Exception as exc:
        logger.exception("Tool '%s' crashed", name)
        return ToolResult.failure(ExecutionError(f"Tool '{name}' execution failed: {exc}"))
