"""Data model for Toolwire.

Pydantic models for everything that crosses the wire (tool descriptors,
invocation requests/results, prompts, resources) and for the conversation
transcript the Dispatcher sends to the language model.

Wire payloads are validated on the way in with ``from_wire()`` and rendered
with ``to_wire()``; nothing else in the package re-serializes them by hand.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from toolwire.exceptions import ProtocolError


# ---------------------------------------------------------------------------
# Identity and capabilities
# ---------------------------------------------------------------------------


class ServerInfo(BaseModel):
    """Name and version of one side of a connection."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str


class Capabilities(BaseModel):
    """Feature families a session supports."""

    model_config = ConfigDict(frozen=True)

    prompts: bool = False
    resources: bool = False
    tools: bool = False

    def enabled(self) -> set[str]:
        """Return the names of the enabled capabilities."""
        return {name for name in ("prompts", "resources", "tools") if getattr(self, name)}


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class InputSchema(BaseModel):
    """The subset of JSON Schema used to describe tool arguments.

    Only ``type``, ``properties`` and ``required`` are kept; any other key in
    an incoming schema is dropped.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _required_are_properties(self) -> InputSchema:
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"required names not in properties: {missing}")
        return self


class ToolDescriptor(BaseModel):
    """A named, schema-described tool. Immutable once registered."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    input_schema: InputSchema = Field(default_factory=InputSchema)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_wire(cls, data: Any) -> ToolDescriptor:
        """Validate a descriptor received from the other side.

        Raises:
            ProtocolError: If the payload is not a valid descriptor.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError(f"Invalid tool descriptor: {exc}") from exc


class TextContent(BaseModel):
    """A text segment of a tool result or prompt message."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolInvocationRequest(BaseModel):
    """A request to run one tool, correlated by ``correlation_id``."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str
    tool_name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolInvocationResult(BaseModel):
    """The outcome of one tool invocation.

    ``content`` is never empty unless ``is_error`` is set.
    """

    model_config = ConfigDict(frozen=True)

    correlation_id: str = ""
    content: list[TextContent] = Field(default_factory=list)
    is_error: bool = False

    @model_validator(mode="after")
    def _content_or_error(self) -> ToolInvocationResult:
        if not self.content and not self.is_error:
            raise ValueError("tool result requires content or is_error")
        return self

    @property
    def text(self) -> str:
        """All text segments joined with newlines."""
        return "\n".join(segment.text for segment in self.content)

    @classmethod
    def error(cls, message: str, correlation_id: str = "") -> ToolInvocationResult:
        """Build an error result carrying ``message`` as its only segment."""
        return cls(
            correlation_id=correlation_id,
            content=[TextContent(text=message)],
            is_error=True,
        )

    def to_wire(self) -> dict[str, Any]:
        """Wire shape: ``{"content": [...], "is_error": bool}``."""
        return {
            "content": [segment.model_dump() for segment in self.content],
            "is_error": self.is_error,
        }

    @classmethod
    def from_wire(cls, data: Any, correlation_id: str = "") -> ToolInvocationResult:
        """Validate a tool result payload from the wire.

        Raises:
            ProtocolError: If the payload is not a valid result.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Tool result must be an object, got {type(data).__name__}")
        try:
            return cls.model_validate({**data, "correlation_id": correlation_id})
        except ValidationError as exc:
            raise ProtocolError(f"Invalid tool result: {exc}") from exc


# ---------------------------------------------------------------------------
# Prompts and resources
# ---------------------------------------------------------------------------


class PromptArgument(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    required: bool = False


class PromptDescriptor(BaseModel):
    """A named prompt template a server offers."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    arguments: list[PromptArgument] = Field(default_factory=list)


class PromptMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: TextContent


class PromptResult(BaseModel):
    """A rendered prompt: a description plus the messages to send."""

    model_config = ConfigDict(frozen=True)

    description: str = ""
    messages: list[PromptMessage] = Field(default_factory=list)


class ResourceDescriptor(BaseModel):
    """A readable resource, addressed by URI."""

    model_config = ConfigDict(frozen=True)

    uri: str = Field(min_length=1)
    name: str
    description: str = ""
    mime_type: str = "text/plain"


class ResourceContents(BaseModel):
    model_config = ConfigDict(frozen=True)

    uri: str
    mime_type: str = "text/plain"
    text: str


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


TurnRole = Literal["user", "assistant", "tool_result"]


class ConversationTurn(BaseModel):
    """One entry of the transcript sent to the language model.

    ``content`` is plain text for user turns. Assistant turns that requested
    tools carry the structured blocks of the reply; ``tool_result`` turns
    carry a dict with ``tool_use_id``, ``tool_name``, ``content`` and
    ``is_error``.
    """

    model_config = ConfigDict(frozen=True)

    role: TurnRole
    content: str | list[dict[str, Any]] | dict[str, Any]


Transcript = list[ConversationTurn]
