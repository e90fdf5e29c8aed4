"""Server side: registries, per-connection sessions and the HTTP app."""

from toolwire.server.registry import (
    PromptRegistry,
    ResourceRegistry,
    ToolRegistry,
)
from toolwire.server.server import ToolServer
from toolwire.server.session import ServerSession

__all__ = [
    "ToolServer",
    "ServerSession",
    "ToolRegistry",
    "PromptRegistry",
    "ResourceRegistry",
]
