"""In-memory registries for the tools, prompts and resources a server exposes.

Each registry keeps entries in registration order and rejects duplicate
keys. ``ToolRegistry.invoke()`` looks up a tool by name, runs its handler
with the arguments mapping and returns a structured ToolInvocationResult;
handler exceptions never escape it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from toolwire.exceptions import (
    DuplicatePromptError,
    DuplicateResourceError,
    DuplicateToolError,
    UnknownPromptError,
    UnknownResourceError,
    UnknownToolError,
)
from toolwire.models import (
    PromptDescriptor,
    PromptMessage,
    PromptResult,
    ResourceContents,
    ResourceDescriptor,
    TextContent,
    ToolDescriptor,
    ToolInvocationResult,
)

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], object]
PromptHandler = Callable[[dict[str, str]], object]
ResourceHandler = Callable[[str], object]

D = TypeVar("D")
H = TypeVar("H")
R = TypeVar("R", bound="_Registry[Any, Any]")


@dataclass(frozen=True)
class Entry(Generic[D, H]):
    """A registered descriptor paired with the handler that serves it."""

    descriptor: D
    handler: H


class _Registry(ABC, Generic[D, H]):
    """Ordered, duplicate-free mapping of key -> Entry."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry[D, H]] = {}

    @abstractmethod
    def _key(self, descriptor: D) -> str:
        ...

    @abstractmethod
    def _duplicate(self, key: str) -> Exception:
        ...

    @abstractmethod
    def _unknown(self, key: str) -> Exception:
        ...

    def register(self, descriptor: D, handler: H) -> None:
        """Register ``descriptor`` served by ``handler``.

        Raises:
            RegistryError: The matching Duplicate*Error if the key is taken.
                The registry is left unchanged.
        """
        key = self._key(descriptor)
        if key in self._entries:
            raise self._duplicate(key)
        self._entries[key] = Entry(descriptor=descriptor, handler=handler)
        logger.debug("Registered %s %r", type(descriptor).__name__, key)

    def list(self) -> list[D]:
        """Return descriptors in registration order."""
        return [entry.descriptor for entry in self._entries.values()]

    def get(self, key: str) -> D:
        return self._entry(key).descriptor

    def _entry(self, key: str) -> Entry[D, H]:
        entry = self._entries.get(key)
        if entry is None:
            raise self._unknown(key)
        return entry

    def snapshot(self: R) -> R:
        """Return an independent copy; later registrations do not show up in it."""
        copy = type(self)()
        copy._entries = dict(self._entries)
        return copy

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _to_segments(value: object) -> list[TextContent]:
    """Normalize a handler's return value into text segments."""
    if value is None:
        return []
    if isinstance(value, TextContent):
        return [value]
    if isinstance(value, str):
        return [TextContent(text=value)]
    if isinstance(value, dict) and value.get("type") == "text":
        return [TextContent.model_validate(value)]
    if isinstance(value, (list, tuple)):
        segments: list[TextContent] = []
        for item in value:
            segments.extend(_to_segments(item))
        return segments
    return [TextContent(text=str(value))]


class ToolRegistry(_Registry[ToolDescriptor, ToolHandler]):
    """Registry of tools keyed by name.

    Usage::

        registry = ToolRegistry()
        registry.register(
            ToolDescriptor(name="echo", description="Echo text back"),
            lambda args: args.get("text", ""),
        )
        result = registry.invoke("echo", {"text": "hi"})
        assert result.text == "hi"
    """

    def _key(self, descriptor: ToolDescriptor) -> str:
        return descriptor.name

    def _duplicate(self, key: str) -> Exception:
        return DuplicateToolError(key)

    def _unknown(self, key: str) -> Exception:
        return UnknownToolError(key)

    def invoke(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        *,
        correlation_id: str = "",
    ) -> ToolInvocationResult:
        """Run the tool ``name`` with ``arguments``.

        The result always has non-empty content or ``is_error=True``. A
        handler that returns nothing yields a single empty text segment.

        Args:
            name: Registered tool name.
            arguments: Argument mapping passed to the handler as-is.
            correlation_id: Copied onto the result.

        Returns:
            ToolInvocationResult; handler exceptions become an error result
            carrying ``"<ExceptionType>: <message>"``.

        Raises:
            UnknownToolError: If ``name`` is not registered.
        """
        entry = self._entry(name)
        try:
            value = entry.handler(dict(arguments or {}))
        except Exception as exc:
            logger.debug("Tool %s failed: %s", name, exc, exc_info=True)
            return ToolInvocationResult.error(
                f"{type(exc).__name__}: {exc}", correlation_id=correlation_id
            )

        if isinstance(value, ToolInvocationResult):
            return value.model_copy(update={"correlation_id": correlation_id})
        try:
            segments = _to_segments(value)
        except ValueError as exc:
            return ToolInvocationResult.error(
                f"Tool {name} returned invalid content: {exc}",
                correlation_id=correlation_id,
            )
        return ToolInvocationResult(
            correlation_id=correlation_id,
            content=segments or [TextContent(text="")],
        )


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class PromptRegistry(_Registry[PromptDescriptor, PromptHandler]):
    """Registry of prompt templates keyed by name."""

    def _key(self, descriptor: PromptDescriptor) -> str:
        return descriptor.name

    def _duplicate(self, key: str) -> Exception:
        return DuplicatePromptError(key)

    def _unknown(self, key: str) -> Exception:
        return UnknownPromptError(key)

    def render(self, name: str, arguments: dict[str, str] | None = None) -> PromptResult:
        """Render prompt ``name``. A plain string becomes one user message.

        Raises:
            UnknownPromptError: If ``name`` is not registered.
        """
        entry = self._entry(name)
        value = entry.handler(dict(arguments or {}))
        if isinstance(value, PromptResult):
            return value
        return PromptResult(
            description=entry.descriptor.description,
            messages=[PromptMessage(role="user", content=TextContent(text=str(value)))],
        )


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


def _to_contents(value: object, uri: str, mime_type: str) -> list[ResourceContents]:
    """Normalize a resource handler's return value into contents entries."""
    if isinstance(value, ResourceContents):
        return [value]
    if isinstance(value, dict) and "text" in value:
        return [ResourceContents.model_validate({"uri": uri, "mime_type": mime_type, **value})]
    if isinstance(value, (list, tuple)):
        contents: list[ResourceContents] = []
        for item in value:
            contents.extend(_to_contents(item, uri, mime_type))
        return contents
    return [ResourceContents(uri=uri, mime_type=mime_type, text=str(value))]


class ResourceRegistry(_Registry[ResourceDescriptor, ResourceHandler]):
    """Registry of readable resources keyed by URI."""

    def _key(self, descriptor: ResourceDescriptor) -> str:
        return descriptor.uri

    def _duplicate(self, key: str) -> Exception:
        return DuplicateResourceError(key)

    def _unknown(self, key: str) -> Exception:
        return UnknownResourceError(key)

    def read(self, uri: str) -> list[ResourceContents]:
        """Read resource ``uri``.

        A ResourceContents, a list of them, or a mapping with a ``text`` key
        is used as-is; any other value is rendered with ``str()`` into one
        entry carrying the descriptor's MIME type.

        Raises:
            UnknownResourceError: If ``uri`` is not registered.
        """
        entry = self._entry(uri)
        return _to_contents(entry.handler(uri), uri, entry.descriptor.mime_type)
