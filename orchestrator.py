"""
Core interaction engine for the console.

This module turns user input into conversation turns. It owns the session's
state machine transitions: appending the user's message, calling the Backend
Gateway, folding the reply (or the failure) back into the session, and handing
the reply to the speech sink. The session is always passed in explicitly and
returned, so every operation can be driven from a test without a UI.
"""
import abc
import logging
import random
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from audio import AudioRecorder, CaptureError, encode_audio
from config import EMPTY_RESPONSE_PLACEHOLDER, FALLBACK_OPENER, HISTORY_WINDOW
from data_models import ChatMessage, Connector, DesignProfile, HistoryEntry, InteractionRequest, Persona
from gateway_client import GatewayError
from session_models import ConsoleSession, SessionBusyError
from studio import connector_context, find_persona
from utils import create_message_id, now_ms


class UnknownPersonaError(KeyError):
    """Raised when an operation names a persona the studio does not have."""

    def __init__(self, persona_id: str):
        super().__init__(persona_id)
        self.persona_id = persona_id

    def __str__(self) -> str:
        return f"Unknown persona '{self.persona_id}'."


class SpeechSink(abc.ABC):
    """Somewhere assistant replies can be spoken aloud."""

    @abc.abstractmethod
    def speak(self, text: str) -> None:
        ...


class InteractionInput(BaseModel):
    """A finished audio capture, typed text, or both."""

    audio: Optional[bytes] = None
    text: Optional[str] = None


class InteractionContext(BaseModel):
    """
    Everything an interaction reads besides the session itself.

    ``gateway`` is any object with an ``interact(InteractionRequest)`` method;
    ``on_update`` is called with the session whenever it changes so the UI can
    re-render.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    personas: list[Persona]
    connectors: list[Connector] = Field(default_factory=list)
    design_profile: Optional[DesignProfile] = None
    gateway: Any
    speech_sink: Optional[SpeechSink] = None
    on_update: Optional[Callable[[ConsoleSession], None]] = None


def _notify(context_or_callback: Any, session: ConsoleSession) -> None:
    callback = getattr(context_or_callback, "on_update", context_or_callback)
    if callback:
        callback(session)


def build_history(messages: Iterable[ChatMessage], window: int = HISTORY_WINDOW) -> list[HistoryEntry]:
    """The most recent ``window`` messages, oldest first, reduced for transport."""
    recent = list(messages)[-window:] if window > 0 else []
    return [HistoryEntry(role=message.role, text=message.text, persona_id=message.persona_id) for message in recent]


def describe_voice_capture(persona: Persona) -> str:
    """The label shown in place of text for a voice-only submission."""
    descriptor = " • ".join(part for part in (persona.name, persona.tone, "voice capture") if part)
    return f"[Sent {descriptor}]"


def speak_best_effort(sink: Optional[SpeechSink], text: str) -> None:
    """Hands ``text`` to the sink. Sink failures are logged and otherwise ignored."""
    if sink is None:
        return
    try:
        sink.speak(text)
    except Exception as e:
        logging.warning(f"Speech playback failed: {e}")


def select_persona(
    session: ConsoleSession,
    personas: Iterable[Persona],
    persona_id: str,
    recorder: Optional[AudioRecorder] = None,
    rng: random.Random = random,
) -> ConsoleSession:
    """
    Switches the session to another persona.

    The conversation is discarded and replaced by a single opener drawn at
    random from the persona's ``default_openers``. A capture still running on
    ``recorder`` is released without being sent.

    Raises:
        UnknownPersonaError: If no persona has ``persona_id``.
    """
    persona = find_persona(personas, persona_id)
    if persona is None:
        raise UnknownPersonaError(persona_id)

    if recorder is not None and recorder.is_recording:
        recorder.close()
        logging.info(f"Session '{session.name}' discarded its recording on persona switch.")

    opener = rng.choice(persona.default_openers) if persona.default_openers else FALLBACK_OPENER
    session.reset(
        [
            ChatMessage(
                id=create_message_id(),
                role="assistant",
                text=opener,
                persona_id=persona.id,
                created_at=now_ms(),
            )
        ]
    )
    session.active_persona_id = persona.id
    session.last_error = None
    # A reply still in flight belongs to the previous conversation and will be
    # discarded when it lands, so the status is left to that request.
    if not session.is_busy:
        session.transition("idle")
    logging.info(f"Session '{session.name}' switched to persona '{persona.id}'.")
    return session


def submit(session: ConsoleSession, interaction_input: InteractionInput, context: InteractionContext) -> ConsoleSession:
    """
    Sends one user turn to the gateway and folds the reply into the session.

    An input with neither text nor audio is a no-op apart from resetting the
    status to idle.

    Raises:
        SessionBusyError: If another request for this session is in flight.
        UnknownPersonaError: If the session's persona is not in the context.
    """
    text = (interaction_input.text or "").strip()
    audio = interaction_input.audio or b""

    if not text and not audio:
        if not session.is_busy:
            session.transition("idle")
        return session

    persona = find_persona(context.personas, session.active_persona_id)
    if persona is None:
        raise UnknownPersonaError(session.active_persona_id)

    if not session.try_begin_request():
        raise SessionBusyError(session.name)

    try:
        generation = session.generation
        session.append(
            ChatMessage(
                id=create_message_id(),
                role="user",
                text=text or describe_voice_capture(persona),
                persona_id=persona.id,
                created_at=now_ms(),
            )
        )
        session.transition("processing")
        _notify(context, session)

        interaction = InteractionRequest(
            mode_id=persona.id,
            audio_base64=encode_audio(audio) if audio else None,
            prompt=text or None,
            history=build_history(session.messages),
            connectors=context.connectors,
            design_profile=context.design_profile,
        )

        try:
            result = context.gateway.interact(interaction)
        except GatewayError as e:
            logging.error(f"Gateway request failed for session '{session.name}': {e.message}")
            _fail(session, generation, e.message)
            return session
        except Exception as e:
            logging.exception(f"Unexpected failure while processing session '{session.name}'.")
            _fail(session, generation, str(e) or "Unexpected response failure.")
            return session

        if session.generation != generation:
            logging.info(f"Discarding reply for session '{session.name}': the persona changed while it was in flight.")
            session.transition("idle")
            return session

        reply = result.text.strip() if result.text and result.text.strip() else EMPTY_RESPONSE_PLACEHOLDER
        session.append(
            ChatMessage(
                id=create_message_id(),
                role="assistant",
                text=reply,
                persona_id=persona.id,
                created_at=now_ms(),
                connector_context=connector_context(context.connectors),
            )
        )
        session.transition("idle")

        if session.auto_speak:
            speak_best_effort(context.speech_sink, reply)
        return session
    finally:
        session.end_request()
        _notify(context, session)


def _fail(session: ConsoleSession, generation: int, message: str) -> None:
    if session.generation != generation:
        session.transition("idle")
        return
    session.transition("error", message)


def start_recording(
    session: ConsoleSession,
    recorder: AudioRecorder,
    on_update: Optional[Callable[[ConsoleSession], None]] = None,
) -> ConsoleSession:
    """
    Starts an audio capture.

    A device or permission failure leaves the session in the error state with
    the reason recorded; recording never starts in that case.
    """
    session.transition("recording")
    try:
        recorder.start()
    except CaptureError as e:
        logging.warning(f"Could not start recording for session '{session.name}': {e}")
        session.transition("error", str(e) or "Failed to start recording.")
    _notify(on_update, session)
    return session


def stop_recording(session: ConsoleSession, recorder: AudioRecorder, context: InteractionContext) -> ConsoleSession:
    """
    Stops the running capture and submits it.

    An empty capture returns the session to idle without a message or a
    request.
    """
    if not recorder.is_recording:
        if session.status == "recording":
            session.transition("idle")
            _notify(context, session)
        return session

    try:
        payload = recorder.stop()
    except Exception as e:
        logging.exception(f"Recording failed for session '{session.name}'.")
        session.transition("error", str(e) or "Recording failed.")
        _notify(context, session)
        return session

    if not payload:
        logging.info(f"Session '{session.name}' stopped an empty recording; nothing sent.")
        session.transition("idle")
        _notify(context, session)
        return session

    return submit(session, InteractionInput(audio=payload), context)
