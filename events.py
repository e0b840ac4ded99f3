"""
Handles all SocketIO event logic for the console.

This module centralizes the real-time communication between the browser and
the server. Each connected socket gets its own ``ConsoleSession`` plus an
audio recorder fed by the browser's microphone chunks; the studio (personas,
connectors, design profile) is shared by every console and persisted on each
change. It is designed to be registered by the main hyperwave.py script.
"""

import logging
from typing import Optional

from flask import request
from flask_socketio import SocketIO
from pydantic import ValidationError

import orchestrator
import studio
from audio import AudioRecorder, ClientStreamSource, decode_audio
from audit_logger import audit_log
from config import SPEECH_LANG, SPEECH_PITCH, SPEECH_RATE
from data_models import Connector, DesignProfile, DesignSuggestion, Persona, StudioState
from gateway_client import GatewayError
from orchestrator import InteractionContext, InteractionInput, SpeechSink, UnknownPersonaError
from session_models import ActiveConsole, ConsoleSession, InvalidTransitionError, SessionBusyError
from state_store import StudioStateStore
from utils import get_timestamp

# --- Module-level state ---
# Live consoles keyed by Socket.IO session id.
consoles: dict[str, ActiveConsole] = {}
_studio: Optional[StudioState] = None
_store: Optional[StudioStateStore] = None
_gateway = None

# Failures a console reports back to its browser rather than raising.
CONSOLE_ERRORS = (SessionBusyError, UnknownPersonaError, InvalidTransitionError, ValidationError, ValueError, KeyError)


class SocketSpeechSink(SpeechSink):
    """Asks the browser to speak a reply with its own speech synthesis."""

    def __init__(self, socketio: SocketIO, console_id: str):
        self.socketio = socketio
        self.console_id = console_id

    def speak(self, text: str) -> None:
        self.socketio.emit(
            "speak_text",
            {"text": text, "rate": SPEECH_RATE, "pitch": SPEECH_PITCH, "lang": SPEECH_LANG},
            to=self.console_id,
        )


def _emit_error(socketio: SocketIO, console_id: str, message: str) -> None:
    socketio.emit("log_message", {"type": "error", "data": message}, to=console_id)


def _emit_session(socketio: SocketIO, console_id: str, session: ConsoleSession) -> None:
    socketio.emit("session_update", session.snapshot(), to=console_id)


def _broadcast_studio(socketio: SocketIO) -> None:
    socketio.emit("studio_state", _studio.to_wire())


def _persist_studio() -> None:
    _store.save(_studio)


def _build_context(socketio: SocketIO, console_id: str) -> InteractionContext:
    return InteractionContext(
        personas=_studio.personas,
        connectors=_studio.connectors,
        design_profile=_studio.design_profile,
        gateway=_gateway,
        speech_sink=SocketSpeechSink(socketio, console_id),
        on_update=lambda session: _emit_session(socketio, console_id, session),
    )


def create_console(socketio: SocketIO, console_id: str) -> ActiveConsole:
    """
    Creates a console with a fresh session greeted by the active persona.

    Raises:
        UnknownPersonaError: If the studio has no personas at all.
    """
    persona = studio.resolve_active_persona(_studio)
    if persona is None:
        raise UnknownPersonaError(_studio.active_persona_id)

    session = ConsoleSession(name=f"Console_{get_timestamp()}", active_persona_id=persona.id)
    orchestrator.select_persona(session, _studio.personas, persona.id)
    source = ClientStreamSource()
    recorder = AudioRecorder(source, sleep=socketio.sleep)
    return ActiveConsole(session=session, source=source, recorder=recorder)


def _run_submit(socketio: SocketIO, console_id: str, console: ActiveConsole, prompt: str) -> None:
    try:
        session = orchestrator.submit(
            console.session, InteractionInput(text=prompt), _build_context(socketio, console_id)
        )
    except CONSOLE_ERRORS as e:
        _emit_error(socketio, console_id, str(e))
        return
    if session.status == "error":
        audit_log.log_event("Interaction Failed", console_id, session, {"error": session.last_error})


def _run_stop_recording(socketio: SocketIO, console_id: str, console: ActiveConsole) -> None:
    try:
        session = orchestrator.stop_recording(
            console.session, console.recorder, _build_context(socketio, console_id)
        )
    except CONSOLE_ERRORS as e:
        _emit_error(socketio, console_id, str(e))
        return
    if session.status == "error":
        audit_log.log_event("Interaction Failed", console_id, session, {"error": session.last_error})


def _run_design_suggestion(socketio: SocketIO, console_id: str) -> None:
    try:
        result = _gateway.suggest_design(_studio.design_profile)
    except GatewayError as e:
        _emit_error(socketio, console_id, e.message)
        return
    except ValueError as e:
        logging.error(f"Unreadable design suggestion for console {console_id}: {e}")
        _emit_error(socketio, console_id, "Design evolution request failed.")
        return
    socketio.emit("design_suggestion", result.to_wire(), to=console_id)


def register_events(socketio: SocketIO, store: StudioStateStore, gateway_client) -> None:
    """
    Registers all SocketIO event handlers with the main application.

    The studio is read from ``store`` once, here; every later change is
    written back through it.
    """
    global _studio, _store, _gateway
    _store = store
    _studio = store.load()
    _gateway = gateway_client

    def _console_or_error() -> Optional[ActiveConsole]:
        console = consoles.get(request.sid)
        if console is None:
            _emit_error(socketio, request.sid, "No active console. Please refresh.")
        return console

    @socketio.on("connect")
    def handle_connect(auth=None) -> None:
        """Creates a console for the new client and sends it the initial state."""
        console_id = request.sid
        try:
            console = create_console(socketio, console_id)
        except Exception:
            logging.exception(f"Could not create console for {console_id}.")
            _emit_error(socketio, console_id, "Failed to initialize console.")
            return

        consoles[console_id] = console
        logging.info(f"Client connected: {console_id}, Session: {console.session.name}")
        audit_log.log_event("Client Connected", console_id, console.session)
        socketio.emit("studio_state", _studio.to_wire(), to=console_id)
        _emit_session(socketio, console_id, console.session)

    @socketio.on("disconnect")
    def handle_disconnect(auth=None) -> None:
        """Releases the client's recorder and forgets its console."""
        console_id = request.sid
        console = consoles.pop(console_id, None)
        if console is None:
            return
        console.recorder.close()
        logging.info(f"Client disconnected: {console_id}, Session: {console.session.name}")
        audit_log.log_event("Client Disconnected", console_id, console.session)

    @socketio.on("submit_prompt")
    def handle_submit_prompt(data: dict) -> None:
        """
        Sends typed text to the gateway in a background task.

        Args:
            data: A dictionary of the form {"prompt": "What should we build next?"}
        """
        if console := _console_or_error():
            prompt = (data or {}).get("prompt") or ""
            audit_log.log_event("Prompt Submitted", request.sid, console.session, {"length": len(prompt)})
            socketio.start_background_task(_run_submit, socketio, request.sid, console, prompt)

    @socketio.on("start_recording")
    def handle_start_recording(data: Optional[dict] = None) -> None:
        """
        Starts capturing microphone chunks.

        Args:
            data: Optional {"error": "..."} when the browser could not open the microphone.
        """
        if not (console := _console_or_error()):
            return
        if data and data.get("error"):
            console.source.deny(data["error"])
        try:
            orchestrator.start_recording(
                console.session, console.recorder, lambda session: _emit_session(socketio, request.sid, session)
            )
        except CONSOLE_ERRORS as e:
            _emit_error(socketio, request.sid, str(e))
            return
        if console.session.status == "error":
            audit_log.log_event("Recording Failed", request.sid, console.session, {"error": console.session.last_error})

    @socketio.on("audio_chunk")
    def handle_audio_chunk(data) -> None:
        """Receives one recorder timeslice, either raw bytes or {"data": "<base64>"}."""
        if not (console := _console_or_error()):
            return
        try:
            chunk = data if isinstance(data, (bytes, bytearray)) else decode_audio((data or {}).get("data") or "").data
        except ValueError as e:
            _emit_error(socketio, request.sid, str(e))
            return
        console.recorder.feed(bytes(chunk))

    @socketio.on("stop_recording")
    def handle_stop_recording(data=None) -> None:
        """Finalizes the capture and submits it in a background task."""
        if console := _console_or_error():
            socketio.start_background_task(_run_stop_recording, socketio, request.sid, console)

    @socketio.on("select_persona")
    def handle_select_persona(data: dict) -> None:
        """Switches this console to another persona and remembers the choice."""
        if not (console := _console_or_error()):
            return
        persona_id = (data or {}).get("id", "")
        try:
            orchestrator.select_persona(console.session, _studio.personas, persona_id, console.recorder)
        except UnknownPersonaError as e:
            _emit_error(socketio, request.sid, str(e))
            return
        _studio.active_persona_id = persona_id
        _persist_studio()
        audit_log.log_event("Persona Selected", request.sid, console.session)
        _emit_session(socketio, request.sid, console.session)
        _broadcast_studio(socketio)

    @socketio.on("set_auto_speak")
    def handle_set_auto_speak(data: dict) -> None:
        if console := _console_or_error():
            console.session.auto_speak = bool((data or {}).get("enabled"))
            _emit_session(socketio, request.sid, console.session)

    @socketio.on("save_persona")
    def handle_save_persona(data: dict) -> None:
        """Creates or updates a persona; a new persona becomes this console's active one."""
        if not (console := _console_or_error()):
            return
        try:
            persona = Persona.model_validate((data or {}).get("persona") or {})
        except ValidationError as e:
            _emit_error(socketio, request.sid, f"Invalid persona: {e}")
            return
        is_new = studio.find_persona(_studio.personas, persona.id) is None
        saved = studio.save_persona(_studio, persona)
        _persist_studio()
        audit_log.log_event("Persona Saved", request.sid, console.session, {"id": saved.id})
        # The active persona's conversation restarts whenever its definition changes.
        if is_new or saved.id == console.session.active_persona_id:
            orchestrator.select_persona(console.session, _studio.personas, saved.id, console.recorder)
            _emit_session(socketio, request.sid, console.session)
        _broadcast_studio(socketio)

    @socketio.on("save_connector")
    def handle_save_connector(data: dict) -> None:
        if not (console := _console_or_error()):
            return
        try:
            connector = Connector.model_validate((data or {}).get("connector") or {})
        except ValidationError as e:
            _emit_error(socketio, request.sid, f"Invalid connector: {e}")
            return
        saved = studio.save_connector(_studio, connector)
        _persist_studio()
        audit_log.log_event("Connector Saved", request.sid, console.session, {"id": saved.id})
        _broadcast_studio(socketio)

    @socketio.on("cycle_connector_status")
    def handle_cycle_connector_status(data: dict) -> None:
        if not (console := _console_or_error()):
            return
        connector_id = (data or {}).get("id", "")
        try:
            updated = studio.cycle_connector_status(_studio, connector_id)
        except KeyError:
            _emit_error(socketio, request.sid, f"Unknown connector '{connector_id}'.")
            return
        _persist_studio()
        audit_log.log_event("Connector Status Changed", request.sid, console.session, {"id": updated.id, "status": updated.status})
        _broadcast_studio(socketio)

    @socketio.on("update_design_profile")
    def handle_update_design_profile(data: dict) -> None:
        if not (console := _console_or_error()):
            return
        try:
            profile = DesignProfile.model_validate((data or {}).get("profile") or {})
        except ValidationError as e:
            _emit_error(socketio, request.sid, f"Invalid design profile: {e}")
            return
        studio.update_design_profile(_studio, profile)
        _persist_studio()
        audit_log.log_event("Design Updated", request.sid, console.session, {"id": profile.id})
        _broadcast_studio(socketio)

    @socketio.on("request_design_suggestion")
    def handle_request_design_suggestion(data=None) -> None:
        """Asks the gateway for the next design evolution in a background task."""
        if _console_or_error():
            socketio.start_background_task(_run_design_suggestion, socketio, request.sid)

    @socketio.on("apply_design_suggestion")
    def handle_apply_design_suggestion(data: dict) -> None:
        if not (console := _console_or_error()):
            return
        try:
            suggestion = DesignSuggestion.model_validate((data or {}).get("suggestion") or {})
        except ValidationError as e:
            _emit_error(socketio, request.sid, f"Invalid design suggestion: {e}")
            return
        studio.update_design_profile(_studio, studio.apply_suggestion(_studio.design_profile, suggestion))
        _persist_studio()
        audit_log.log_event("Design Suggestion Applied", request.sid, console.session)
        _broadcast_studio(socketio)

    @socketio.on("request_studio_state")
    def handle_request_studio_state(data=None) -> None:
        socketio.emit("studio_state", _studio.to_wire(), to=request.sid)
