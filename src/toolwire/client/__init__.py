"""Client side: the protocol session and the query Dispatcher."""

from toolwire.client.dispatcher import (
    Dispatcher,
    DispatcherConfig,
    DispatcherState,
    QueryResult,
    StepResult,
)
from toolwire.client.session import ClientSession

__all__ = [
    "ClientSession",
    "Dispatcher",
    "DispatcherConfig",
    "DispatcherState",
    "QueryResult",
    "StepResult",
]
