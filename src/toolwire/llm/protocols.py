"""Model client protocol and the provider-neutral reply it returns.

The Dispatcher only ever talks to a ModelClient. Provider wire formats are
mapped to and from these types inside each client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from toolwire.models import ConversationTurn, ToolDescriptor


@dataclass(frozen=True)
class TextSegment:
    """Plain text produced by the model."""

    text: str

    def to_block(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ToolUse:
    """A tool-invocation marker in a model reply.

    ``id`` is the model's own identifier for the call; the matching
    ``tool_result`` turn refers back to it.
    """

    id: str
    name: str
    arguments: dict = field(default_factory=dict)

    def to_block(self) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "arguments": dict(self.arguments),
        }


ReplySegment = Union[TextSegment, ToolUse]


@dataclass(frozen=True)
class ModelReply:
    """One model turn: ordered text segments and tool-use markers.

    Attributes:
        segments: Reply content in the order the model produced it.
        stop_reason: Provider stop reason, if reported.
        usage: Provider token usage, if reported.
    """

    segments: list[ReplySegment] = field(default_factory=list)
    stop_reason: str | None = None
    usage: dict | None = None

    @property
    def texts(self) -> list[str]:
        return [s.text for s in self.segments if isinstance(s, TextSegment)]

    @property
    def tool_uses(self) -> list[ToolUse]:
        return [s for s in self.segments if isinstance(s, ToolUse)]

    @property
    def has_tool_use(self) -> bool:
        return any(isinstance(s, ToolUse) for s in self.segments)

    def to_blocks(self) -> list[dict[str, Any]]:
        """Structured content for the assistant transcript turn."""
        return [s.to_block() for s in self.segments]


@runtime_checkable
class ModelClient(Protocol):
    """Protocol for pluggable language-model clients.

    Any object with ``send()`` and ``close()`` matching these signatures
    works. The built-in AnthropicClient implements this protocol.
    """

    def send(
        self,
        transcript: list[ConversationTurn],
        tools: list[ToolDescriptor],
    ) -> ModelReply:
        """Send the whole transcript (and available tools), return the reply.

        Raises:
            ModelError: On any upstream failure.
        """
        ...

    def close(self) -> None:
        """Release underlying resources."""
        ...
