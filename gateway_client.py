"""
Provides a client-side abstraction for talking to the Backend Gateway.

Consoles never call Gemini directly; they hand an ``InteractionRequest`` to a
gateway client and get an ``InteractionResult`` back. Two interchangeable
clients exist: one that calls a gateway over HTTP, and one that calls the
gateway hosted in the same process. Both raise ``GatewayError`` carrying the
most specific failure message available.
"""
import logging
from typing import Any, Optional

import requests
from eventlet import tpool

from config import GATEWAY_TIMEOUT_SEC
from data_models import DesignProfile, DesignSuggestionResult, InteractionRequest, InteractionResult

LIVE_PATH = "/api/gemini/live"
DESIGN_PATH = "/api/gemini/design"


class GatewayError(Exception):
    """
    A failed gateway call.

    Attributes:
        status_code: The HTTP status of the failure, or None for transport
            failures that never produced a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def resolve_error_message(body: Any, status_code: int, label: str = "Gemini request") -> str:
    """The payload's error string when present, else a status-derived message."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        if isinstance(error, str) and error:
            return error
    return f"{label} failed with status {status_code}"


def _parse_interaction(body: Any) -> InteractionResult:
    # A success status with an unusable body is not fatal: the orchestrator
    # substitutes its placeholder for the empty text.
    if not isinstance(body, dict):
        return InteractionResult()
    text = body.get("text")
    context = body.get("connectorContext")
    return InteractionResult(
        text=text if isinstance(text, str) else "",
        connector_context=[item for item in context if isinstance(item, str)] if isinstance(context, list) else [],
        raw=body.get("raw") if isinstance(body.get("raw"), dict) else None,
    )


class HttpGatewayClient:
    """Calls a gateway over HTTP."""

    def __init__(self, base_url: str, http: Optional[requests.Session] = None, timeout: Optional[float] = GATEWAY_TIMEOUT_SEC):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout

    def _post(self, path: str, payload: dict[str, Any], label: str) -> Any:
        try:
            response = tpool.execute(self.http.post, f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logging.error(f"{label} could not reach the gateway at {self.base_url}: {e}")
            raise GatewayError(str(e) or f"{label} failed.") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            raise GatewayError(resolve_error_message(body, response.status_code, label), response.status_code)
        return body

    def interact(self, interaction: InteractionRequest) -> InteractionResult:
        body = self._post(LIVE_PATH, interaction.to_wire(), "Gemini request")
        return _parse_interaction(body)

    def suggest_design(self, profile: DesignProfile) -> DesignSuggestionResult:
        body = self._post(DESIGN_PATH, {"profile": profile.to_wire()}, "Design evolution")
        try:
            return DesignSuggestionResult.model_validate(body)
        except ValueError as e:
            raise GatewayError(f"Design evolution returned an unreadable suggestion: {e}") from e


class LocalGatewayClient:
    """
    Calls the gateway functions hosted in this process.

    ``gateway`` is imported on first use so HTTP-only callers never load the
    Gemini SDK or Flask.
    """

    def interact(self, interaction: InteractionRequest) -> InteractionResult:
        import gateway

        body, status = gateway.run_interaction(interaction.to_wire())
        if status >= 400:
            raise GatewayError(resolve_error_message(body, status), status)
        return _parse_interaction(body)

    def suggest_design(self, profile: DesignProfile) -> DesignSuggestionResult:
        import gateway

        body, status = gateway.run_design_suggestion({"profile": profile.to_wire()})
        if status >= 400:
            raise GatewayError(resolve_error_message(body, status, "Design evolution"), status)
        return DesignSuggestionResult.model_validate(body)


def create_gateway_client(base_url: str = ""):
    """An HTTP client when a gateway URL is configured, else the in-process one."""
    if base_url:
        return HttpGatewayClient(base_url)
    return LocalGatewayClient()
