"""
MCP tool registration for the calendar tool service.
"""

from __future__ import annotations

import json
from typing import Optional

from mcp.server.fastmcp import FastMCP

from eventra.services import CalendarToolService

SERVER_NAME = "Eventra"
SERVER_VERSION = "1.0.0"
SSE_PATH = "/sse"
MESSAGE_PATH = "/message"

TOOL_CATALOG = {
    "server": "Eventra MCP Server",
    "version": SERVER_VERSION,
    "description": "Calendar integration tools for Large Language Models",
    "tools": [
        {
            "name": "getMyCalendarDataByDate",
            "description": "Retrieve calendar events for a specific date",
            "parameters": {"date": "string (ISO date format, e.g., '2025-09-03')"},
            "example": {"date": "2025-09-03"},
        },
        {
            "name": "createCalendarEvent",
            "description": "Create a new calendar event",
            "parameters": {
                "summary": "string (required) - Event title",
                "description": "string (optional) - Event description",
                "startDateTime": "string (ISO datetime) - Event start time",
                "endDateTime": "string (ISO datetime) - Event end time",
                "location": "string (optional) - Event location",
            },
            "example": {
                "summary": "Team Meeting",
                "description": "Weekly team sync",
                "startDateTime": "2025-09-03T14:00:00Z",
                "endDateTime": "2025-09-03T15:00:00Z",
                "location": "Conference Room A",
            },
        },
        {
            "name": "setGoogleOAuthTokens",
            "description": "Set OAuth tokens after authorization",
            "parameters": {"code": "string (authorization code from OAuth flow)"},
        },
    ],
    "connection": {
        "endpoint": SSE_PATH,
        "protocol": "Server-Sent Events (SSE)",
        "usage": "Connect your MCP client to this endpoint to access the tools",
    },
    "oauth": {
        "endpoint": "/oauth2callback",
        "description": "OAuth callback endpoint for Google Calendar authorization",
    },
}


def build_tool_server(service: CalendarToolService, *, host: str = "0.0.0.0") -> FastMCP:
    """Create a FastMCP server exposing the three calendar tools."""
    server = FastMCP(
        name=SERVER_NAME,
        instructions=(
            "Read and create Google Calendar events. When createCalendarEvent "
            "returns an authUrl, ask the user to open it and paste the code back "
            "through setGoogleOAuthTokens."
        ),
        host=host,
        sse_path=SSE_PATH,
        message_path=MESSAGE_PATH,
    )

    @server.tool(
        name="getMyCalendarDataByDate",
        description="Retrieve your calendar events for a specific date.",
    )
    async def get_my_calendar_data_by_date(date: str) -> str:
        return json.dumps(await service.read(date))

    # Parameter names are the camelCase names of the tool's input schema.
    @server.tool(
        name="createCalendarEvent",
        description="Create a new event in your Google Calendar.",
    )
    async def create_calendar_event(
        summary: str,
        startDateTime: str,  # noqa: N803
        endDateTime: str,  # noqa: N803
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> str:
        result = await service.write(
            {
                "summary": summary,
                "description": description,
                "startDateTime": startDateTime,
                "endDateTime": endDateTime,
                "location": location,
            }
        )
        return json.dumps(result)

    @server.tool(
        name="setGoogleOAuthTokens",
        description="Set the OAuth tokens for Google Calendar after authorization.",
    )
    async def set_google_oauth_tokens(code: str) -> str:
        return json.dumps(await service.set_tokens(code))

    return server


__all__ = [
    "MESSAGE_PATH",
    "SERVER_NAME",
    "SERVER_VERSION",
    "SSE_PATH",
    "TOOL_CATALOG",
    "build_tool_server",
]
