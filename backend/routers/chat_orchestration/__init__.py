"""
Relay Chat Orchestration - conversational turn pipeline

This module provides the orchestration layer behind the chat WebSocket
handler. Each component is usable and testable on its own.

Components:
- RoomRegistry: Connection membership, room owners, room-scoped broadcast
- ChatHistoryStore: Per-room ordered message log with idle eviction
- RetrievalContextAssembler: Remembered facts and selected-document context
- LLMOrchestrator: Intent / summary / acknowledge model calls
- ToolDispatcher: Typed tool validation, execution and lifecycle events
- TurnController: The per-message state machine with cancellation

Turn flow:
    user message -> history -> retrieval context -> intent call
        -> [tool -> summary call] -> stream -> history -> ingestion

    Retrieval and ingestion failures never reach the turn. Model failures
    get one acknowledge-error call, then a plain error event.
"""

from .registry import RoomRegistry
from .history import ChatHistoryStore, ChatMessage, Role
from .context import AssembledContext, RetrievalContextAssembler, RetrievedFact
from .orchestrator import LLMOrchestrator, ModelDecision, ToolCallRequest
from .tool_dispatch import ToolDispatcher, ToolOutcome
from .turn import CancelScope, Turn, TurnController, TurnRequest, TurnState

__all__ = [
    "RoomRegistry",
    "ChatHistoryStore",
    "ChatMessage",
    "Role",
    "AssembledContext",
    "RetrievalContextAssembler",
    "RetrievedFact",
    "LLMOrchestrator",
    "ModelDecision",
    "ToolCallRequest",
    "ToolDispatcher",
    "ToolOutcome",
    "CancelScope",
    "Turn",
    "TurnController",
    "TurnRequest",
    "TurnState",
]
