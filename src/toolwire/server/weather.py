"""The demo weather server: one tool, one prompt, one resource."""

from __future__ import annotations

import logging
from typing import Any

from toolwire._version import __version__
from toolwire.models import (
    Capabilities,
    PromptMessage,
    PromptResult,
    ResourceContents,
    ServerInfo,
    TextContent,
)
from toolwire.server.server import ToolServer

logger = logging.getLogger(__name__)

SERVER_NAME = "weather-tool-server"

WEATHER_TOOL = "weather-tool"
WEATHER_PROMPT = "weather-prompt"
WEB_SEARCH_URI = "https://search.com/"

WEATHER_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "City": {"type": "string", "description": "Name of the city"},
    },
    "required": ["City"],
}


def weather(arguments: dict[str, Any]) -> str:
    city = arguments.get("City")
    if not city:
        raise ValueError("missing required argument 'City'")
    logger.info("Processing weather tool request for city: %s", city)
    return f"The weather in {city} is 20 degrees Celsius"


def weather_prompt(arguments: dict[str, str]) -> PromptResult:
    logger.info("Processing weather prompt request")
    return PromptResult(
        description="Get the weather for a given city",
        messages=[
            PromptMessage(
                role="user",
                content=TextContent(text="Get the weather for a given city"),
            )
        ],
    )


def web_search(uri: str) -> ResourceContents:
    logger.info("Processing web search request for URI: %s", uri)
    return ResourceContents(
        uri=uri, mime_type="text/html", text=f"Placeholder content for {uri}"
    )


def build_weather_server() -> ToolServer:
    """Create the demo server with all prompts, resources and tools enabled."""
    server = ToolServer(
        ServerInfo(name=SERVER_NAME, version=__version__),
        Capabilities(prompts=True, resources=True, tools=True),
    )
    server.add_prompt(
        WEATHER_PROMPT, weather_prompt, description="Get the weather for a given city"
    )
    server.add_tool(
        WEATHER_TOOL,
        weather,
        description="Get the weather for a given city",
        input_schema=WEATHER_INPUT_SCHEMA,
    )
    server.add_resource(
        WEB_SEARCH_URI,
        web_search,
        name="Web Search",
        description="Web search engine",
        mime_type="text/html",
    )
    return server
