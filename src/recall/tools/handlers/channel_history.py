"""Tool for reading back a channel's message history."""

from __future__ import annotations

import logging

from recall.config import retrieval as retrieval_cfg
from recall.errors import ContextError, InvalidParametersError
from recall.formatting import format_age, iso_timestamp, relevance_percent

from .. import Tool, ToolContext, ToolResult, ToolSpec, register_tool

logger = logging.getLogger(__name__)


@register_tool(
    ToolSpec(
        name="channel_history",
        description=(
            'Search or retrieve message history from the current channel. Use "recent" mode to get '
            'the last N messages for more conversation context, or "search" mode to find specific '
            "messages matching a search query."
        ),
        parameters={
            "type": "object",
            "properties": {
                "mode": {
                    "type": "string",
                    "enum": ["recent", "search"],
                    "description": 'Mode of retrieval: "recent" for last N messages, "search" for semantic search',
                },
                "query": {
                    "type": "string",
                    "description": 'Search query (required for "search" mode). Describe what you\'re looking for.',
                },
                "limit": {
                    "type": "integer",
                    "description": (
                        f"Number of messages to retrieve. Default: {retrieval_cfg.RECENT_DEFAULT_LIMIT} for recent, "
                        f"{retrieval_cfg.SEARCH_DEFAULT_LIMIT} for search. Max: {retrieval_cfg.RECENT_MAX_LIMIT}."
                    ),
                },
            },
            "required": ["mode"],
            "additionalProperties": False,
        },
    )
)
class ChannelHistoryTool(Tool):
    async def run(self, *, context: ToolContext, mode: str, query: str | None = None, limit=None) -> ToolResult:
        if context.channel_id is None:
            raise ContextError("Channel history needs a channel")
        if mode == "recent":
            return await self._recent(context, limit)
        if mode == "search":
            return await self._search(context, query, limit)
        raise InvalidParametersError(f"Unknown mode '{mode}'; expected 'recent' or 'search'")

    async def _recent(self, context: ToolContext, limit) -> ToolResult:
        messages = await self.retrieval.recent(context.scope(), limit)
        if not messages:
            return ToolResult.ok(
                {"mode": "recent", "count": 0, "messages": [], "note": "No messages found in this channel yet."}
            )
        formatted = [
            {
                "timestamp": iso_timestamp(m.created_at),
                "user": m.author_name or "Unknown",
                "is_bot": m.is_bot,
                "content": m.content,
            }
            for m in messages
        ]
        logger.info("Retrieved %d recent messages (channel=%s)", len(formatted), context.channel_id)
        return ToolResult.ok({"mode": "recent", "count": len(formatted), "messages": formatted})

    async def _search(self, context: ToolContext, query, limit) -> ToolResult:
        if query is None:
            raise InvalidParametersError("Search query must be at least 3 characters")
        results = await self.retrieval.semantic_search(context.scope(), query, limit)
        if not results:
            return ToolResult.ok(
                {
                    "mode": "search",
                    "query": query,
                    "count": 0,
                    "messages": [],
                    "note": "No relevant messages found matching your query.",
                }
            )
        formatted = [
            {
                "timestamp": iso_timestamp(r.record.created_at),
                "age": format_age(r.record.created_at),
                "user": r.record.author_name or "Unknown",
                "content": r.record.content,
                "relevance": relevance_percent(r.score),
            }
            for r in results
        ]
        return ToolResult.ok({"mode": "search", "query": query, "count": len(formatted), "messages": formatted})
