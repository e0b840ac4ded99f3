import threading
from unittest.mock import MagicMock

import pytest

import orchestrator
from audio import AudioRecorder, ClientStreamSource
from config import EMPTY_RESPONSE_PLACEHOLDER, FALLBACK_OPENER
from data_models import ChatMessage, Connector, InteractionResult, Persona
from defaults import default_studio_state
from gateway_client import GatewayError
from orchestrator import InteractionContext, InteractionInput, SpeechSink, UnknownPersonaError
from session_models import ConsoleSession, SessionBusyError


@pytest.fixture
def setup_console():
    """
    A fresh session on the default "aether" persona, plus a context whose
    gateway and speech sink are mocks.
    """
    state = default_studio_state()
    session = ConsoleSession(name="test-session", active_persona_id="aether")
    orchestrator.select_persona(session, state.personas, "aether")

    mock_gateway = MagicMock()
    mock_gateway.interact.return_value = InteractionResult(text="hi there")
    mock_sink = MagicMock(spec=SpeechSink)
    mock_on_update = MagicMock()

    context = InteractionContext(
        personas=state.personas,
        connectors=[],
        design_profile=state.design_profile,
        gateway=mock_gateway,
        speech_sink=mock_sink,
        on_update=mock_on_update,
    )
    return {
        "state": state,
        "session": session,
        "context": context,
        "gateway": mock_gateway,
        "sink": mock_sink,
        "on_update": mock_on_update,
    }


def _message(index: int, role: str = "user") -> ChatMessage:
    return ChatMessage(id=f"m{index}", role=role, text=f"message {index}", persona_id="aether", created_at=index)


# --- Persona switching ---

@pytest.mark.parametrize("persona_id", ["aether", "sentience", "lumen"])
def test_select_persona_leaves_single_opener(setup_console, persona_id):
    mocks = setup_console
    session = mocks["session"]
    for index in range(5):
        session.append(_message(index))

    orchestrator.select_persona(session, mocks["state"].personas, persona_id)

    assert len(session.messages) == 1
    opener = session.messages[0]
    assert opener.role == "assistant"
    assert opener.persona_id == persona_id
    persona = next(p for p in mocks["state"].personas if p.id == persona_id)
    assert opener.text in persona.default_openers
    assert session.active_persona_id == persona_id
    assert session.status == "idle"


def test_select_persona_uses_fallback_opener_when_persona_has_none():
    session = ConsoleSession(name="s", active_persona_id="aether")
    personas = [Persona(id="blank", name="Blank")]

    orchestrator.select_persona(session, personas, "blank")

    assert [m.text for m in session.messages] == [FALLBACK_OPENER]


def test_select_persona_picks_opener_with_given_rng(setup_console):
    mocks = setup_console
    session = mocks["session"]
    rng = MagicMock()
    rng.choice.side_effect = lambda openers: openers[-1]

    orchestrator.select_persona(session, mocks["state"].personas, "lumen", rng=rng)

    assert session.messages[0].text == "Who are we guiding, and what tone should land?"


def test_select_persona_clears_error(setup_console):
    mocks = setup_console
    session = mocks["session"]
    session.transition("processing")
    session.transition("error", "boom")

    orchestrator.select_persona(session, mocks["state"].personas, "sentience")

    assert session.status == "idle"
    assert session.last_error is None


def test_select_unknown_persona_raises_and_keeps_session(setup_console):
    mocks = setup_console
    session = mocks["session"]
    before = list(session.messages)

    with pytest.raises(UnknownPersonaError) as excinfo:
        orchestrator.select_persona(session, mocks["state"].personas, "ghost")

    assert str(excinfo.value) == "Unknown persona 'ghost'."
    assert session.messages == before
    assert session.active_persona_id == "aether"


# --- Submitting ---

@pytest.mark.parametrize("interaction_input", [InteractionInput(), InteractionInput(text="   "), InteractionInput(audio=b"")])
def test_empty_submit_changes_nothing(setup_console, interaction_input):
    mocks = setup_console
    session = mocks["session"]
    before = list(session.messages)

    orchestrator.submit(session, interaction_input, mocks["context"])

    assert session.messages == before
    assert session.status == "idle"
    mocks["gateway"].interact.assert_not_called()


def test_submit_hello_appends_user_and_assistant(setup_console):
    # 1. ARRANGE
    mocks = setup_console
    session = mocks["session"]

    # 2. ACT
    orchestrator.submit(session, InteractionInput(text="hello"), mocks["context"])

    # 3. ASSERT
    user, assistant = session.messages[1], session.messages[2]
    assert len(session.messages) == 3
    assert (user.role, user.text, user.persona_id) == ("user", "hello", "aether")
    assert (assistant.role, assistant.text, assistant.persona_id) == ("assistant", "hi there", "aether")
    assert assistant.connector_context == []
    assert session.status == "idle"
    assert session.last_error is None

    request = mocks["gateway"].interact.call_args.args[0]
    assert request.mode_id == "aether"
    assert request.prompt == "hello"
    assert request.audio_base64 is None
    assert request.design_profile == mocks["state"].design_profile


def test_submit_speaks_reply_when_auto_speak_enabled(setup_console):
    mocks = setup_console

    orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    mocks["sink"].speak.assert_called_once_with("hi there")


def test_submit_does_not_speak_when_auto_speak_disabled(setup_console):
    mocks = setup_console
    mocks["session"].auto_speak = False

    orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    mocks["sink"].speak.assert_not_called()


def test_speech_failure_does_not_affect_outcome(setup_console):
    mocks = setup_console
    mocks["sink"].speak.side_effect = RuntimeError("no voices")

    session = orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    assert session.status == "idle"
    assert session.messages[-1].text == "hi there"


def test_submit_reports_processing_then_idle(setup_console):
    mocks = setup_console
    seen = []
    mocks["context"].on_update = lambda session: seen.append(session.status)

    orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    assert seen == ["processing", "idle"]


def test_only_active_connectors_appear_in_context(setup_console):
    mocks = setup_console
    mocks["context"].connectors = [
        Connector(id="a", name="Atlas", status="active", capabilities=["search", "mining", "exports", "extra"]),
        Connector(id="b", name="Journey", status="paused", capabilities=["heatmaps"]),
        Connector(id="c", name="Synth", status="draft", capabilities=["nlp"]),
    ]

    orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    assert mocks["session"].messages[-1].connector_context == ["Atlas · search, mining, exports"]
    request = mocks["gateway"].interact.call_args.args[0]
    assert [c.id for c in request.connectors] == ["a", "b", "c"]


def test_history_is_trimmed_to_most_recent_twelve(setup_console):
    mocks = setup_console
    session = mocks["session"]
    session.reset([_message(i, "user" if i % 2 else "assistant") for i in range(50)])

    orchestrator.submit(session, InteractionInput(text="hello"), mocks["context"])

    history = mocks["gateway"].interact.call_args.args[0].history
    assert len(history) == 12
    expected = [m.text for m in session.messages[:51][-12:]]
    assert [entry.text for entry in history] == expected
    assert history[-1].text == "hello"
    assert history[0].text == "message 39"


def test_empty_reply_uses_placeholder(setup_console):
    mocks = setup_console
    mocks["gateway"].interact.return_value = InteractionResult(text="   ")

    orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    assert mocks["session"].messages[-1].text == EMPTY_RESPONSE_PLACEHOLDER


def test_gateway_error_sets_error_state(setup_console):
    # 1. ARRANGE
    mocks = setup_console
    session = mocks["session"]
    mocks["gateway"].interact.side_effect = GatewayError("upstream down", 500)

    # 2. ACT
    orchestrator.submit(session, InteractionInput(text="hello"), mocks["context"])

    # 3. ASSERT
    assert session.status == "error"
    assert session.last_error == "upstream down"
    assert [m.role for m in session.messages] == ["assistant", "user"]
    mocks["sink"].speak.assert_not_called()


def test_unexpected_exception_message_becomes_last_error(setup_console):
    mocks = setup_console
    mocks["gateway"].interact.side_effect = ConnectionError("socket closed")

    orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    assert mocks["session"].status == "error"
    assert mocks["session"].last_error == "socket closed"


def test_new_submit_is_accepted_after_error(setup_console):
    mocks = setup_console
    session = mocks["session"]
    mocks["gateway"].interact.side_effect = [GatewayError("upstream down", 500), InteractionResult(text="back")]

    orchestrator.submit(session, InteractionInput(text="first"), mocks["context"])
    orchestrator.submit(session, InteractionInput(text="second"), mocks["context"])

    assert session.status == "idle"
    assert session.last_error is None
    assert session.messages[-1].text == "back"


def test_voice_only_submit_sends_base64_and_labels_message(setup_console):
    mocks = setup_console

    orchestrator.submit(mocks["session"], InteractionInput(audio=b"\x00\x01\x02"), mocks["context"])

    user = mocks["session"].messages[1]
    assert user.text == "[Sent Aether Composer • Visionary, confident, descriptive yet succinct. • voice capture]"
    request = mocks["gateway"].interact.call_args.args[0]
    assert request.audio_base64 == "AAEC"
    assert request.prompt is None
    assert "prompt" not in request.to_wire()


def test_submit_with_unknown_active_persona_raises(setup_console):
    mocks = setup_console
    mocks["session"].active_persona_id = "ghost"

    with pytest.raises(UnknownPersonaError):
        orchestrator.submit(mocks["session"], InteractionInput(text="hello"), mocks["context"])

    mocks["gateway"].interact.assert_not_called()


def test_second_submit_while_in_flight_is_rejected(setup_console):
    # 1. ARRANGE: hold the first request inside the gateway.
    mocks = setup_console
    session = mocks["session"]
    entered = threading.Event()
    release = threading.Event()

    def slow_interact(request):
        entered.set()
        release.wait(timeout=5)
        return InteractionResult(text="first reply")

    mocks["gateway"].interact.side_effect = slow_interact
    worker = threading.Thread(
        target=orchestrator.submit, args=(session, InteractionInput(text="first"), mocks["context"])
    )
    worker.start()
    assert entered.wait(timeout=5)

    # 2. ACT
    with pytest.raises(SessionBusyError):
        orchestrator.submit(session, InteractionInput(text="second"), mocks["context"])
    release.set()
    worker.join(timeout=5)

    # 3. ASSERT
    assert [m.text for m in session.messages[1:]] == ["first", "first reply"]
    assert mocks["gateway"].interact.call_count == 1
    assert session.status == "idle"


def test_reply_after_persona_switch_is_discarded(setup_console):
    mocks = setup_console
    session = mocks["session"]

    def switch_then_reply(request):
        orchestrator.select_persona(session, mocks["state"].personas, "lumen")
        return InteractionResult(text="stale reply")

    mocks["gateway"].interact.side_effect = switch_then_reply

    orchestrator.submit(session, InteractionInput(text="hello"), mocks["context"])

    assert len(session.messages) == 1
    assert session.messages[0].persona_id == "lumen"
    assert session.status == "idle"
    mocks["sink"].speak.assert_not_called()


def test_failure_after_persona_switch_is_discarded(setup_console):
    mocks = setup_console
    session = mocks["session"]

    def switch_then_fail(request):
        orchestrator.select_persona(session, mocks["state"].personas, "lumen")
        raise GatewayError("upstream down", 500)

    mocks["gateway"].interact.side_effect = switch_then_fail

    orchestrator.submit(session, InteractionInput(text="hello"), mocks["context"])

    assert session.status == "idle"
    assert session.last_error is None


# --- Recording ---

@pytest.fixture
def recorder():
    source = ClientStreamSource()
    return AudioRecorder(source, min_recording_ms=0, sleep=MagicMock())


def test_start_recording_moves_to_recording(setup_console, recorder):
    mocks = setup_console

    orchestrator.start_recording(mocks["session"], recorder, mocks["on_update"])

    assert mocks["session"].status == "recording"
    assert recorder.is_recording
    mocks["on_update"].assert_called_once_with(mocks["session"])


def test_denied_microphone_sets_error(setup_console, recorder):
    mocks = setup_console
    recorder.source.deny("Permission denied")

    orchestrator.start_recording(mocks["session"], recorder)

    assert mocks["session"].status == "error"
    assert mocks["session"].last_error == "Permission denied"
    assert not recorder.is_recording


def test_stop_recording_submits_captured_audio(setup_console, recorder):
    mocks = setup_console
    orchestrator.start_recording(mocks["session"], recorder)
    recorder.feed(b"voice")

    orchestrator.stop_recording(mocks["session"], recorder, mocks["context"])

    request = mocks["gateway"].interact.call_args.args[0]
    assert request.audio_base64 == "dm9pY2U="
    assert mocks["session"].status == "idle"
    assert mocks["session"].messages[-1].text == "hi there"
    assert not recorder.is_recording


def test_empty_recording_returns_to_idle_without_request(setup_console, recorder):
    mocks = setup_console
    orchestrator.start_recording(mocks["session"], recorder)
    before = list(mocks["session"].messages)

    orchestrator.stop_recording(mocks["session"], recorder, mocks["context"])

    assert mocks["session"].status == "idle"
    assert mocks["session"].messages == before
    mocks["gateway"].interact.assert_not_called()


def test_stop_without_recording_is_harmless(setup_console, recorder):
    mocks = setup_console

    orchestrator.stop_recording(mocks["session"], recorder, mocks["context"])

    assert mocks["session"].status == "idle"
    mocks["gateway"].interact.assert_not_called()


def test_build_history_keeps_persona_id():
    messages = [_message(1), _message(2, "assistant")]

    history = orchestrator.build_history(messages)

    assert [entry.to_wire() for entry in history] == [
        {"role": "user", "text": "message 1", "modeId": "aether"},
        {"role": "assistant", "text": "message 2", "modeId": "aether"},
    ]



def test_persona_switch_releases_running_capture(setup_console, recorder):
    # 1. ARRANGE
    mocks = setup_console
    session = mocks["session"]
    orchestrator.start_recording(session, recorder)
    recorder.feed(b"half a sentence")

    # 2. ACT
    orchestrator.select_persona(session, mocks["state"].personas, "lumen", recorder)
    orchestrator.start_recording(session, recorder)

    # 3. ASSERT
    assert session.status == "recording"
    assert session.last_error is None
    assert recorder.is_recording
    assert recorder.stop() == b""
    mocks["gateway"].interact.assert_not_called()


def test_speech_sink_is_abstract():
    with pytest.raises(TypeError):
        SpeechSink()
