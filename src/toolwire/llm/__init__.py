"""Language-model clients.

The Dispatcher depends only on the ModelClient protocol; AnthropicClient
is the built-in implementation.
"""

from toolwire.llm.anthropic import (
    AnthropicClient,
    reply_from_anthropic,
    to_anthropic_tool,
    transcript_to_anthropic,
)
from toolwire.llm.protocols import ModelClient, ModelReply, TextSegment, ToolUse

__all__ = [
    "AnthropicClient",
    "ModelClient",
    "ModelReply",
    "TextSegment",
    "ToolUse",
    "reply_from_anthropic",
    "to_anthropic_tool",
    "transcript_to_anthropic",
]
