"""
Defines the high-level data structures for managing a console session.

A ``ConsoleSession`` is the explicit context object the orchestrator receives
and returns: the ordered message history, the active persona, and the
transient status of the conversation. ``ActiveConsole`` bundles a session with
the per-connection resources the Socket.IO layer needs to drive it.
"""
import threading
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from audio import AudioRecorder, ClientStreamSource
from data_models import ChatMessage

SessionStatus = Literal["idle", "recording", "processing", "error"]

# Every status change goes through this table. Errors never block: a new user
# action is accepted from the error state exactly as from idle.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "idle": frozenset({"idle", "recording", "processing"}),
    "recording": frozenset({"idle", "processing", "error"}),
    "processing": frozenset({"idle", "error"}),
    "error": frozenset({"idle", "recording", "processing"}),
}


class InvalidTransitionError(Exception):
    """Raised when a status change is not permitted by the state machine."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move a session from '{current}' to '{target}'.")
        self.current = current
        self.target = target


class SessionBusyError(Exception):
    """Raised when a request is submitted while another is still in flight."""

    def __init__(self, session_name: str):
        super().__init__(f"A request is already in flight for session '{session_name}'.")


class ConsoleSession(BaseModel):
    """
    The live state of one console.

    Only the orchestrator mutates a session, one event at a time. Messages are
    appended during an interaction and replaced wholesale on a persona switch,
    which also bumps ``generation`` so that a reply for the previous persona
    can be recognised as stale.
    """

    name: str
    active_persona_id: str
    messages: list[ChatMessage] = Field(default_factory=list)
    status: SessionStatus = "idle"
    last_error: Optional[str] = None
    auto_speak: bool = True
    generation: int = 0

    # Single-slot guard against overlapping requests.
    _in_flight: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def transition(self, target: SessionStatus, error: Optional[str] = None) -> None:
        """
        Moves the session to ``target``.

        Entering ``error`` records ``error`` as ``last_error``; leaving the
        error state for any other status clears it.

        Raises:
            InvalidTransitionError: If the state machine forbids the move.
        """
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status, target)
        self.status = target
        if target == "error":
            self.last_error = error or "Unexpected response failure."
        else:
            self.last_error = None

    def append(self, message: ChatMessage) -> None:
        if any(existing.id == message.id for existing in self.messages):
            raise ValueError(f"Message id '{message.id}' already exists in session '{self.name}'.")
        self.messages.append(message)

    def reset(self, messages: list[ChatMessage]) -> None:
        self.messages = list(messages)
        self.generation += 1

    def try_begin_request(self) -> bool:
        return self._in_flight.acquire(blocking=False)

    def end_request(self) -> None:
        self._in_flight.release()

    @property
    def is_busy(self) -> bool:
        return self._in_flight.locked()

    def snapshot(self) -> dict:
        """The JSON shape the browser renders from."""
        return {
            "name": self.name,
            "status": self.status,
            "activeModeId": self.active_persona_id,
            "lastError": self.last_error,
            "autoSpeak": self.auto_speak,
            "messages": [message.to_wire() for message in self.messages],
        }


class ActiveConsole(BaseModel):
    """
    Represents a connected browser console with all its stateful objects.

    This model acts as a "context object" for the Socket.IO handlers, keeping
    the session and its recording resources together.
    """

    # This config allows the model to hold the recorder and its source, which
    # are not pydantic models.
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session: ConsoleSession
    source: ClientStreamSource
    recorder: AudioRecorder
