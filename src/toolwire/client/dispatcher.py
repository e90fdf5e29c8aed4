"""Client-side Dispatcher: the model-query / tool-invocation loop.

Each query starts a fresh transcript holding only the user's turn. The
Dispatcher sends the transcript to the model; if the reply asks for tools
it invokes them one at a time through the ClientSession, appends a
``tool_result`` turn per call and asks the model again. The loop ends at
the first reply without a tool-use marker (or after ``max_steps`` model
calls), and the answer is every non-empty text segment seen along the
way, joined with newlines.

Tool failures are folded into the transcript so the model can react;
model failures abort the query; transport failures propagate.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from toolwire.exceptions import (
    ConnectionClosed,
    DispatcherBusyError,
    ModelError,
    ToolError,
    UnknownToolError,
)
from toolwire.llm.protocols import TextSegment
from toolwire.models import ConversationTurn, ToolInvocationResult

if TYPE_CHECKING:
    from toolwire.client.session import ClientSession
    from toolwire.llm.protocols import ModelClient, ModelReply, ToolUse
    from toolwire.models import ToolDescriptor

logger = logging.getLogger(__name__)


class DispatcherState(str, enum.Enum):
    """States of one query's processing cycle."""

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    MODEL_REPLIED = "model_replied"
    TOOL_CALL_PENDING = "tool_call_pending"
    DONE = "done"


@dataclass(frozen=True)
class StepResult:
    """Record of one tool invocation made while answering a query."""

    step: int
    tool_use: ToolUse
    result: ToolInvocationResult

    @property
    def success(self) -> bool:
        return not self.result.is_error


@dataclass(frozen=True)
class QueryResult:
    """Outcome of one query.

    Attributes:
        answer: Newline-joined text of every model reply.
        transcript: The turns sent to the model, including tool results.
        steps: Tool invocations in the order they ran.
        model_calls: Number of model round-trips.
        truncated: True if ``max_steps`` stopped the loop early.
    """

    answer: str
    transcript: list[ConversationTurn] = field(default_factory=list)
    steps: list[StepResult] = field(default_factory=list)
    model_calls: int = 0
    truncated: bool = False


@dataclass
class DispatcherConfig:
    """Configuration for the Dispatcher.

    Attributes:
        max_steps: Maximum model calls per query.
        announce_tool_calls: Add a ``[Calling tool NAME with args ARGS]``
            line to the answer for each tool call.
        on_step: Callback invoked after each tool invocation.
    """

    max_steps: int = 10
    announce_tool_calls: bool = False
    on_step: Callable[[StepResult], None] | None = None


class Dispatcher:
    """Drives model-query / tool-invocation cycles for one chat session.

    The Dispatcher owns ``model`` and closes it in ``close()``. ``session``
    may be None, in which case no tools are offered to the model (basic
    chat mode).

    Usage::

        with Dispatcher(AnthropicClient(), session) as dispatcher:
            print(dispatcher.process_query("What's the weather in Tokyo?"))
    """

    def __init__(
        self,
        model: ModelClient,
        session: ClientSession | None = None,
        config: DispatcherConfig | None = None,
    ) -> None:
        self._model = model
        self._session = session
        self._config = config or DispatcherConfig()
        self._state = DispatcherState.IDLE
        self._busy = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> DispatcherState:
        """Return the current state."""
        return self._state

    @property
    def session(self) -> ClientSession | None:
        return self._session

    @property
    def tools(self) -> list[ToolDescriptor]:
        """Tools offered to the model: the session's discovery snapshot."""
        if self._session is None:
            return []
        return list(self._session.tools)

    def process_query(self, query: str) -> str:
        """Answer ``query`` and return the final text."""
        return self.run(query).answer

    def run(self, query: str) -> QueryResult:
        """Process one query end to end.

        Raises:
            DispatcherBusyError: If another query is in progress.
            ModelError: If the model call fails; the query is abandoned.
            TransportError: If the connection to the tool server fails,
                or had already ended when the query arrived.
        """
        if not self._busy.acquire(blocking=False):
            raise DispatcherBusyError()
        try:
            result = self._run(query)
        except Exception:
            self._state = DispatcherState.IDLE
            raise
        finally:
            self._busy.release()
        self._state = DispatcherState.DONE
        return result

    def close(self) -> None:
        """Close the model client."""
        self._model.close()

    def __enter__(self) -> Dispatcher:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------

    def _run(self, query: str) -> QueryResult:
        if self._session is not None and self._session.closed:
            raise ConnectionClosed(self._session.close_reason or "session closed")
        transcript: list[ConversationTurn] = [ConversationTurn(role="user", content=query)]
        tools = self.tools
        texts: list[str] = []
        steps: list[StepResult] = []
        model_calls = 0

        while True:
            if model_calls >= self._config.max_steps:
                logger.warning(
                    "Stopping after %d model calls without a final answer", model_calls
                )
                return QueryResult(
                    answer="\n".join(texts),
                    transcript=transcript,
                    steps=steps,
                    model_calls=model_calls,
                    truncated=True,
                )

            self._state = DispatcherState.AWAITING_MODEL
            reply = self._call_model(transcript, tools)
            model_calls += 1
            self._state = DispatcherState.MODEL_REPLIED
            texts.extend(self._collect_text(reply))

            if not reply.has_tool_use:
                break

            self._state = DispatcherState.TOOL_CALL_PENDING
            transcript.append(ConversationTurn(role="assistant", content=reply.to_blocks()))
            for tool_use in reply.tool_uses:
                result = self._invoke(tool_use)
                transcript.append(
                    ConversationTurn(
                        role="tool_result",
                        content={
                            "tool_use_id": tool_use.id,
                            "tool_name": tool_use.name,
                            "content": result.text,
                            "is_error": result.is_error,
                        },
                    )
                )
                step = StepResult(step=len(steps) + 1, tool_use=tool_use, result=result)
                steps.append(step)
                if self._config.on_step is not None:
                    try:
                        self._config.on_step(step)
                    except Exception:
                        logger.debug("on_step callback error", exc_info=True)

        return QueryResult(
            answer="\n".join(texts),
            transcript=transcript,
            steps=steps,
            model_calls=model_calls,
        )

    def _call_model(
        self,
        transcript: list[ConversationTurn],
        tools: list[ToolDescriptor],
    ) -> ModelReply:
        """Send the transcript to the model, normalizing failures to ModelError."""
        try:
            return self._model.send(list(transcript), tools)
        except ModelError:
            raise
        except Exception as exc:
            raise ModelError(f"Model call failed: {type(exc).__name__}: {exc}") from exc

    def _collect_text(self, reply: ModelReply) -> list[str]:
        """Text for the answer, in reply order, with optional call announcements."""
        collected: list[str] = []
        for segment in reply.segments:
            if isinstance(segment, TextSegment):
                if segment.text:
                    collected.append(segment.text)
            elif self._config.announce_tool_calls:
                collected.append(f"[Calling tool {segment.name} with args {segment.arguments}]")
        return collected

    def _invoke(self, tool_use: ToolUse) -> ToolInvocationResult:
        """Run one tool call, turning tool-level failures into an error result."""
        if self._session is None:
            return ToolInvocationResult.error(
                f"No tool server is connected; cannot call {tool_use.name}"
            )
        invocation = self._session.new_invocation(tool_use.name, tool_use.arguments)
        try:
            return self._session.invoke(invocation)
        except (ToolError, UnknownToolError) as exc:
            logger.warning("Tool %s failed: %s", tool_use.name, exc)
            return ToolInvocationResult.error(
                str(exc), correlation_id=invocation.correlation_id
            )
