import time
from unittest.mock import MagicMock

import eventlet
import pytest
import requests

import gateway_client
from data_models import InteractionRequest
from defaults import DEFAULT_DESIGN_PROFILE
from gateway_client import (
    DESIGN_PATH,
    LIVE_PATH,
    GatewayError,
    HttpGatewayClient,
    LocalGatewayClient,
    create_gateway_client,
    resolve_error_message,
)


def _http_response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def setup_client():
    http = MagicMock(spec=requests.Session)
    client = HttpGatewayClient("http://gateway.test/", http=http)
    interaction = InteractionRequest(mode_id="aether", prompt="hello")
    return {"http": http, "client": client, "interaction": interaction}


def test_interact_posts_wire_payload(setup_client):
    mocks = setup_client
    mocks["http"].post.return_value = _http_response(200, {"text": "hi there", "connectorContext": ["Atlas · search"]})

    result = mocks["client"].interact(mocks["interaction"])

    assert result.text == "hi there"
    assert result.connector_context == ["Atlas · search"]
    url = mocks["http"].post.call_args.args[0]
    assert url == f"http://gateway.test{LIVE_PATH}"
    payload = mocks["http"].post.call_args.kwargs["json"]
    assert payload == {"modeId": "aether", "prompt": "hello", "history": [], "connectors": []}
    assert mocks["http"].post.call_args.kwargs["timeout"] is None


def test_interact_error_payload_wins(setup_client):
    mocks = setup_client
    mocks["http"].post.return_value = _http_response(500, {"error": "upstream down"})

    with pytest.raises(GatewayError) as excinfo:
        mocks["client"].interact(mocks["interaction"])

    assert excinfo.value.message == "upstream down"
    assert excinfo.value.status_code == 500


def test_interact_error_without_payload_uses_status(setup_client):
    mocks = setup_client
    mocks["http"].post.return_value = _http_response(502, ValueError("no json"))

    with pytest.raises(GatewayError, match="Gemini request failed with status 502"):
        mocks["client"].interact(mocks["interaction"])


def test_transport_failure_uses_exception_message(setup_client):
    mocks = setup_client
    mocks["http"].post.side_effect = requests.exceptions.ConnectionError("connection refused")

    with pytest.raises(GatewayError) as excinfo:
        mocks["client"].interact(mocks["interaction"])

    assert excinfo.value.message == "connection refused"
    assert excinfo.value.status_code is None


def test_success_with_unusable_body_is_empty_result(setup_client):
    mocks = setup_client
    mocks["http"].post.return_value = _http_response(200, ["not", "a", "dict"])

    result = mocks["client"].interact(mocks["interaction"])

    assert result.text == ""
    assert result.connector_context == []


def test_suggest_design(setup_client):
    mocks = setup_client
    body = {
        "suggestion": {
            "summary": "Go nocturnal.",
            "palette": {"primary": "#101010", "accent": "#FF00AA", "background": "#000000"},
            "layout": {"density": "airy", "cornerStyle": "sharp", "shadowStyle": "soft"},
        },
        "source": "gemini",
    }
    mocks["http"].post.return_value = _http_response(200, body)

    result = mocks["client"].suggest_design(DEFAULT_DESIGN_PROFILE)

    assert result.source == "gemini"
    assert result.suggestion.layout.density == "airy"
    assert mocks["http"].post.call_args.args[0].endswith(DESIGN_PATH)
    assert mocks["http"].post.call_args.kwargs["json"]["profile"]["primaryColor"] == "#6c4afe"


def test_suggest_design_error_label(setup_client):
    mocks = setup_client
    mocks["http"].post.return_value = _http_response(400, {})

    with pytest.raises(GatewayError, match="Design evolution failed with status 400"):
        mocks["client"].suggest_design(DEFAULT_DESIGN_PROFILE)


@pytest.mark.parametrize(
    "body, expected",
    [
        ({"error": "quota"}, "quota"),
        ({"error": {"message": "nested"}}, "nested"),
        ({"error": ""}, "Gemini request failed with status 503"),
        (None, "Gemini request failed with status 503"),
    ],
)
def test_resolve_error_message(body, expected):
    assert resolve_error_message(body, 503) == expected


def test_local_client_calls_gateway_in_process(mocker):
    mock_run = mocker.patch("gateway.run_interaction", return_value=({"text": "local", "connectorContext": []}, 200))

    result = LocalGatewayClient().interact(InteractionRequest(mode_id="aether", prompt="hello"))

    assert result.text == "local"
    assert mock_run.call_args.args[0]["modeId"] == "aether"


def test_local_client_raises_on_error_status(mocker):
    mocker.patch("gateway.run_interaction", return_value=({"error": "upstream down"}, 500))

    with pytest.raises(GatewayError) as excinfo:
        LocalGatewayClient().interact(InteractionRequest(mode_id="aether", prompt="hello"))

    assert excinfo.value.message == "upstream down"
    assert excinfo.value.status_code == 500


def test_create_gateway_client():
    assert isinstance(create_gateway_client(""), LocalGatewayClient)
    assert isinstance(create_gateway_client("http://gateway.test"), HttpGatewayClient)


def test_slow_http_call_does_not_stall_other_green_threads(setup_client):
    mocks = setup_client

    def slow_post(*args, **kwargs):
        time.sleep(0.5)
        return _http_response(200, {"text": "hi there"})

    mocks["http"].post.side_effect = slow_post
    ticks = []

    def other_console():
        for _ in range(40):
            ticks.append(time.monotonic())
            eventlet.sleep(0.02)

    ticker = eventlet.spawn(other_console)
    result = eventlet.spawn(mocks["client"].interact, mocks["interaction"]).wait()
    ticker.kill()

    gaps = [later - earlier for earlier, later in zip(ticks, ticks[1:])]
    assert result.text == "hi there"
    assert max(gaps) < 0.25


def test_http_client_does_not_load_in_process_gateway():
    assert not hasattr(gateway_client, "gateway")
