"""Tool for saving and recalling what is remembered about the calling user."""

from __future__ import annotations

import logging

from recall.errors import ContextError, InvalidParametersError
from recall.formatting import format_age, relevance_percent
from recall.store import MEMORY_SOURCES

from .. import Tool, ToolContext, ToolResult, ToolSpec, register_tool

logger = logging.getLogger(__name__)

# profile_update is written by background profiling, not by the model
_SAVABLE_TYPES = ["preference", "fact", "instruction", "context"]


@register_tool(
    ToolSpec(
        name="recall_memory",
        description=(
            "Save or recall memories about the current user: preferences, facts, instructions and "
            'ongoing context. Use action "save" when the user shares something worth remembering '
            '(source "explicit" when they ask you to remember it, "inferred" when you notice it). '
            'Use action "recall" with an optional query to find the most relevant memories; omit '
            "the query to list the latest."
        ),
        parameters={
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["save", "recall"],
                    "description": "The action to perform. Default: recall.",
                },
                "query": {"type": "string", "description": "What you want to remember about the user (recall)."},
                "limit": {"type": "integer", "description": "Maximum memories to return (recall)."},
                "type": {
                    "type": "string",
                    "enum": _SAVABLE_TYPES,
                    "description": "Type of memory (required for save).",
                },
                "content": {"type": "string", "description": "The memory to save (required for save)."},
                "source": {
                    "type": "string",
                    "enum": list(MEMORY_SOURCES),
                    "description": 'Use "explicit" when the user asked, "inferred" otherwise. Default: explicit.',
                },
                "global": {
                    "type": "boolean",
                    "description": "Remember across every server and DMs instead of only here.",
                },
            },
            "required": [],
            "additionalProperties": False,
        },
    )
)
class RecallMemoryTool(Tool):
    async def run(self, *, context: ToolContext, action: str = "recall", **kwargs) -> ToolResult:
        if context.user_id is None:
            raise ContextError("Memories need a user")
        if action == "save":
            return await self._save(context, **kwargs)
        if action == "recall":
            return await self._recall(context, **kwargs)
        raise InvalidParametersError(f"Unknown action '{action}'; expected 'save' or 'recall'")

    async def _save(
        self,
        context: ToolContext,
        *,
        content: str | None = None,
        type: str | None = None,
        source: str = "explicit",
        **kwargs,
    ) -> ToolResult:
        is_global = kwargs.pop("global", False)
        if kwargs:
            raise InvalidParametersError(f"Unexpected arguments for save: {', '.join(sorted(kwargs))}")
        if type not in _SAVABLE_TYPES:
            raise InvalidParametersError(f"Memory type is required for save (one of {', '.join(_SAVABLE_TYPES)})")
        if not isinstance(content, str) or not content.strip():
            raise InvalidParametersError("Memory content is required for save")
        if not isinstance(is_global, bool):
            raise InvalidParametersError("'global' must be a boolean")

        rid, created = await self.retrieval.add_memory(
            user_id=context.user_id,
            guild_id=context.guild_id,
            content=content.strip(),
            memory_type=type,
            source=source,
            is_global=is_global,
        )
        logger.info("Memory %s (id=%s user=%s type=%s)", "saved" if created else "matched", rid, context.user_id, type)
        return ToolResult.ok(
            {
                "id": rid,
                "action": "created" if created else "existing",
                "message": f"Saved new memory (ID: {rid})" if created else f"Already remembered (ID: {rid})",
            }
        )

    async def _recall(self, context: ToolContext, *, query: str | None = None, limit=None) -> ToolResult:
        results = await self.retrieval.recall_memories(context.user_id, context.guild_id, query, limit)
        memories = []
        for r in results:
            m = r.record
            item = {
                "id": m.id,
                "type": m.memory_type,
                "content": m.content,
                "source": m.source,
                "global": m.is_global,
                "age": format_age(m.created_at),
            }
            if r.score > 0:
                item["relevance"] = relevance_percent(r.score)
            memories.append(item)
        data = {"count": len(memories), "memories": memories}
        if not memories:
            data["note"] = "No memories saved for this user yet."
        return ToolResult.ok(data)
