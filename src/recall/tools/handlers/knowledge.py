"""Tool for the guild knowledge base."""

from __future__ import annotations

from recall.errors import ContextError, InvalidParametersError
from recall.formatting import iso_timestamp, relevance_percent
from recall.store import RecordKind, Scope

from .. import Tool, ToolContext, ToolResult, ToolSpec, register_tool


@register_tool(
    ToolSpec(
        name="search_knowledge",
        description=(
            "Search the server's knowledge base for relevant information. The knowledge base contains "
            "shared information, documentation, FAQs, and other resources added by server members."
        ),
        parameters={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "The search query - describe what information you are looking for",
                },
                "tag": {
                    "type": "string",
                    "description": 'Optional tag to filter results (e.g., "rules", "faq", "guide")',
                },
                "id": {
                    "type": "integer",
                    "description": "Optional: Get a specific knowledge entry by ID instead of searching",
                },
                "list_tags": {
                    "type": "boolean",
                    "description": "If true, returns all available tags in this server instead of searching",
                },
            },
            "required": [],
            "additionalProperties": False,
        },
    )
)
class KnowledgeSearchTool(Tool):
    async def run(
        self,
        *,
        context: ToolContext,
        query: str | None = None,
        tag: str | None = None,
        id: int | None = None,
        list_tags: bool = False,
    ) -> ToolResult:
        if context.guild_id is None:
            raise ContextError("Knowledge base is only available in servers, not DMs")
        # knowledge belongs to the guild, not the channel it was asked from
        scope = Scope(guild_id=str(context.guild_id))

        if list_tags:
            tags = await self.retrieval.list_tags(scope)
            entries = await self.retrieval.count(scope, RecordKind.KNOWLEDGE)
            if not entries:
                hint = "No knowledge entries exist yet"
            elif not tags:
                hint = "Entries exist but none are tagged; search by query instead"
            else:
                hint = "Use these tags to filter searches"
            return ToolResult.ok({"tags": tags, "count": len(tags), "entries": entries, "hint": hint})

        if id is not None:
            entry = await self.retrieval.by_id(id, scope, RecordKind.KNOWLEDGE)
            return ToolResult.ok(
                {
                    "id": entry.id,
                    "content": entry.content,
                    "tags": list(entry.tags),
                    "created": iso_timestamp(entry.created_at),
                }
            )

        if not query:
            if tag:
                entries = await self.retrieval.by_tag(scope, tag)
                return ToolResult.ok(
                    {
                        "results": [{"id": e.id, "content": e.content, "tags": list(e.tags)} for e in entries],
                        "count": len(entries),
                    }
                )
            raise InvalidParametersError("Please provide a search query, an ID, a tag, or set list_tags to true")

        results = await self.retrieval.knowledge_search(context.guild_id, query, tag=tag)
        if not results:
            message = f'No knowledge found matching "{query}"'
            if tag:
                message += f' with tag "{tag}"'
            return ToolResult.ok(
                {
                    "results": [],
                    "count": 0,
                    "message": message,
                    "hint": "The knowledge base may not have information on this topic yet",
                }
            )
        return ToolResult.ok(
            {
                "results": [
                    {
                        "id": r.record.id,
                        "content": r.record.content,
                        "tags": list(r.record.tags),
                        "relevance": relevance_percent(r.score),
                    }
                    for r in results
                ],
                "count": len(results),
            }
        )
