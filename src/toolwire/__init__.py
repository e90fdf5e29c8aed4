"""Toolwire: tool-calling chat over a streaming client/server protocol.

A ToolServer publishes named, schema-described tools; a ClientSession
discovers them over a Transport; a Dispatcher lets a language model call
them while answering a user's query.
"""

from toolwire._version import __version__

# Core entry points
from toolwire.client.dispatcher import (
    Dispatcher,
    DispatcherConfig,
    DispatcherState,
    QueryResult,
    StepResult,
)
from toolwire.client.session import ClientSession
from toolwire.server.server import ToolServer
from toolwire.server.session import ServerSession
from toolwire.server.registry import PromptRegistry, ResourceRegistry, ToolRegistry

# Transports
from toolwire.transport import Connection, MemoryTransport, SseTransport, Transport

# Language models
from toolwire.llm import AnthropicClient, ModelClient, ModelReply, TextSegment, ToolUse

# Data models
from toolwire.models import (
    Capabilities,
    ConversationTurn,
    InputSchema,
    PromptDescriptor,
    PromptResult,
    ResourceContents,
    ResourceDescriptor,
    ServerInfo,
    TextContent,
    ToolDescriptor,
    ToolInvocationRequest,
    ToolInvocationResult,
)

# Exceptions
from toolwire.exceptions import (
    ConnectionClosed,
    DispatcherBusyError,
    DuplicateToolError,
    ModelError,
    ProtocolError,
    RegistryError,
    RemoteError,
    RequestTimeoutError,
    ToolError,
    ToolwireError,
    TransportError,
    UnknownToolError,
)

__all__ = [
    "__version__",
    "Dispatcher",
    "DispatcherConfig",
    "DispatcherState",
    "QueryResult",
    "StepResult",
    "ClientSession",
    "ToolServer",
    "ServerSession",
    "ToolRegistry",
    "PromptRegistry",
    "ResourceRegistry",
    "Connection",
    "Transport",
    "MemoryTransport",
    "SseTransport",
    "AnthropicClient",
    "ModelClient",
    "ModelReply",
    "TextSegment",
    "ToolUse",
    "Capabilities",
    "ConversationTurn",
    "InputSchema",
    "PromptDescriptor",
    "PromptResult",
    "ResourceContents",
    "ResourceDescriptor",
    "ServerInfo",
    "TextContent",
    "ToolDescriptor",
    "ToolInvocationRequest",
    "ToolInvocationResult",
    "ConnectionClosed",
    "DispatcherBusyError",
    "DuplicateToolError",
    "ModelError",
    "ProtocolError",
    "RegistryError",
    "RemoteError",
    "RequestTimeoutError",
    "ToolError",
    "ToolwireError",
    "TransportError",
    "UnknownToolError",
]
