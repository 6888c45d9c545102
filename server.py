#!/usr/bin/env python3
"""
MCP server for natural-language findings queries.
Exposes the query matcher and executor to Claude via Model Context Protocol.
"""

import asyncio
import json
import logging
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from config import QueryConfig, load_config, setup_logging
from departments import DepartmentDirectory
from executor import order_sorts_for_inequality
from service import QueryService
from store import InMemoryAuditResultStore

logger = logging.getLogger(__name__)

# Create the server instance
app = Server("findings-query-matcher")

_service: Optional[QueryService] = None


def build_service(config: QueryConfig) -> QueryService:
    """Load audit results from the configured data file and wire the service."""
    if config.data_file and config.data_file.exists():
        store = InMemoryAuditResultStore.from_file(config.data_file)
    else:
        if config.data_file:
            logger.warning("Data file %s not found, starting with an empty store", config.data_file)
        store = InMemoryAuditResultStore()
    directory = DepartmentDirectory.from_records(store.records)
    return QueryService(store, directory, config=config)


def get_service() -> QueryService:
    global _service
    if _service is None:
        _service = build_service(load_config())
    return _service


def set_service(service: Optional[QueryService]) -> None:
    """Replace the service used by tool calls (None resets to lazy loading)."""
    global _service
    _service = service


def _text(payload) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


@app.list_tools()
async def list_tools() -> list[Tool]:
    """
    List available tools for Claude to use.
    """
    return [
        Tool(
            name="query_findings",
            description="Answer a natural-language question about audit findings, "
                       "e.g. 'IT findings from 2023' or 'top 5 findings'. "
                       "Returns a formatted report and the matching records.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Natural-language findings query"
                    }
                },
                "required": ["query"]
            }
        ),
        Tool(
            name="match_query",
            description="Show how a query is interpreted without running it. "
                       "Returns the matched pattern, extracted parameters, filters and sorts.",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "Natural-language findings query"
                    }
                },
                "required": ["query"]
            }
        ),
        Tool(
            name="list_patterns",
            description="List the query patterns the matcher understands, "
                       "in matching order.",
            inputSchema={
                "type": "object",
                "properties": {}
            }
        ),
    ]


def match_query(service: QueryService, query: str) -> dict:
    result = service.match_query(query)
    if not result.matched:
        return {"matched": False, "confidence": result.confidence}

    pattern = result.pattern
    params = result.params or {}
    filters = pattern.filter_builder(params)
    sorts = order_sorts_for_inequality(filters, pattern.sort_builder(params))
    return {
        "matched": True,
        "confidence": result.confidence,
        "pattern": {"id": pattern.id, "name": pattern.name, "priority": pattern.priority},
        "params": params,
        "filters": [f.to_dict() for f in filters],
        "sorts": [s.to_dict() for s in sorts],
    }


def list_patterns(service: QueryService) -> list[dict]:
    return [
        {
            "id": p.id,
            "name": p.name,
            "category": p.category,
            "priority": p.priority,
            "regex": p.regex.pattern,
        }
        for p in service.matcher.get_sorted_patterns()
    ]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """
    Handle tool calls from Claude.
    Routes to the query service based on tool name.
    """
    arguments = arguments or {}

    try:
        service = get_service()

        if name == "list_patterns":
            return _text(list_patterns(service))

        query = arguments.get("query", "")
        if not query:
            return _text({"error": "No query provided"})

        if name == "query_findings":
            result = await service.process_query(query)
            if result is None:
                return _text({
                    "matched": False,
                    "answer": "Could not interpret the query. Try phrases like "
                              "'IT findings from 2023' or 'top 5 findings'.",
                })
            return _text(result.to_dict())
        elif name == "match_query":
            return _text(match_query(service, query))
        else:
            return _text({"error": f"Unknown tool: {name}"})

    except Exception as e:
        logger.exception("Tool %s failed", name)
        return _text({"error": str(e)})


async def main():
    """Run the MCP server."""
    config = load_config()
    setup_logging(config.log_level)
    set_service(build_service(config))

    async with stdio_server() as (read_stream, write_stream):
        await app.run(
            read_stream,
            write_stream,
            app.create_initialization_options()
        )


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
