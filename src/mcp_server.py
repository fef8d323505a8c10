"""FastMCP server exposing transcript search to coding assistants.

Usage:
    transcripts mcp          # stdio transport
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from transcripts.config import load_config
from transcripts.search import run_search

logger = logging.getLogger(__name__)

mcp = FastMCP("transcripts")


@mcp.tool(name="search_transcripts")
def search_transcripts_tool(
    keywords: list[str],
    days: int | None = None,
    limit: int | None = None,
    context_lines: int | None = None,
    message_type: str = "all",
) -> str:
    """Search past conversation transcripts for relevant context.

    Use this to find previous discussions about a topic, recall past
    decisions, or understand history with a project.

    Args:
        keywords: Keywords to search for (OR matched).
        days: How many days back to search (default: 90).
        limit: Maximum results to return (default: 20).
        context_lines: Lines of context around matches (default: 2).
        message_type: "user", "assistant" or "all" (default: all).
    """
    config = load_config().search
    logger.info("search_transcripts %s in %s", keywords, config.path)
    return run_search(
        keywords,
        config,
        days=days,
        limit=limit,
        context_lines=context_lines,
        message_type=message_type,
    )


def run() -> None:
    """Serve over stdio."""
    mcp.run()
