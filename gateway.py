"""
The Backend Gateway: HTTP endpoints in front of the Gemini API.

``/api/gemini/live`` turns a console interaction bundle (persona id, typed
prompt and/or base64 audio, trimmed history, connectors, design profile) into
generated text. ``/api/gemini/design`` asks Gemini for the next evolution of
the design profile and falls back to an on-device suggestion whenever Gemini
is unavailable or replies off-schema.

The request handling lives in ``run_interaction`` and ``run_design_suggestion``
so that the in-process gateway client can call it without going through HTTP.
Both return a ``(body, status_code)`` pair.
"""
import logging
from typing import Any, Optional

import google.generativeai as genai
from eventlet import tpool
from flask import Blueprint, jsonify, request
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError

import config
from audio import decode_audio
from data_models import (
    Connector,
    DesignProfile,
    DesignSuggestion,
    DesignSuggestionResult,
    HistoryEntry,
    InteractionRequest,
)
from design_evolution import build_design_prompt, fallback_suggestion
from studio import active_connectors, connector_context

gateway_bp = Blueprint("gateway", __name__)

NO_CONNECTORS_LINE = "• No live connectors. Assume first-principles reasoning."
NO_DESIGN_LINE = "Design profile unspecified. Default to calm glassmorphism with luminous gradients."


def create_system_instruction(
    mode_id: str,
    connectors: list[Connector],
    design_profile: Optional[DesignProfile],
) -> str:
    """Composes the system instruction sent alongside every live interaction."""
    connector_lines = "\n".join(
        f"• {connector.name} ({connector.type}) → {', '.join(connector.capabilities)}"
        for connector in active_connectors(connectors)
    ).strip() or NO_CONNECTORS_LINE

    if design_profile:
        design_descriptor = (
            f"Primary: {design_profile.primary_color} | Accent: {design_profile.accent_color} | "
            f"Background: {design_profile.background_gradient}. "
            f"Layout density {design_profile.layout.density}. "
            f"Corner style {design_profile.layout.corner_style}."
        )
    else:
        design_descriptor = NO_DESIGN_LINE

    return "\n".join(
        [
            f'You are the Gemini Live voice for mode "{mode_id}".',
            "Goals:",
            "1. Respond crisply with cinematic detail yet mobile-friendly brevity.",
            "2. Surface what needs to be auto-implemented next when users ask for new modes, MCP servers, or APIs.",
            "3. Provide interaction-ready copy that can be read aloud while remaining visually descriptive.",
            "",
            "Active connector graph:",
            connector_lines,
            "",
            "Current design DNA:",
            design_descriptor,
            "",
            "When returning suggestions, highlight:",
            "• Visual upgrades or screen alterations.",
            "• Interaction or motion cues.",
            "• Integration requirements (new MCP servers or APIs) with the payload shape needed.",
            "",
            "Always end with a crisp recommendation for the next hands-on action the builder can take.",
        ]
    )


def build_contents(interaction: InteractionRequest) -> list[dict[str, Any]]:
    """
    Converts history plus the new user turn into Gemini ``contents``.

    Blank history entries are dropped. Gemini only knows the ``user`` and
    ``model`` roles, so assistant and system turns are sent as ``model``.
    """
    contents = [
        {"role": "user" if entry.role == "user" else "model", "parts": [{"text": entry.text}]}
        for entry in interaction.history
        if entry.text and entry.text.strip()
    ]

    user_parts: list[dict[str, Any]] = []
    if interaction.prompt and interaction.prompt.strip():
        user_parts.append({"text": interaction.prompt.strip()})
    if interaction.audio_base64:
        blob = decode_audio(interaction.audio_base64)
        user_parts.append({"inline_data": {"mime_type": blob.mime_type, "data": blob.data}})

    contents.append({"role": "user", "parts": user_parts})
    return contents


def extract_text(response: Any) -> str:
    """Joins the text parts of the first candidate, ignoring non-text parts."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return ""
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    texts = [part.text for part in parts if isinstance(getattr(part, "text", None), str)]
    return "\n".join(texts).strip()


def _response_to_dict(response: Any) -> Optional[dict[str, Any]]:
    try:
        return response.to_dict()
    except Exception as e:
        logging.warning(f"Could not serialize Gemini response: {e}")
        return None


def _upstream_error(e: Exception, fallback_message: str) -> tuple[dict[str, Any], int]:
    if isinstance(e, google_exceptions.GoogleAPICallError):
        status = e.code if isinstance(e.code, int) and e.code >= 400 else 502
        return {"error": e.message or fallback_message}, status
    return {"error": str(e) or fallback_message}, 502


def _generate(api_key: str, system_instruction: Optional[str], generation_config: dict, contents: Any) -> Any:
    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(
        model_name=config.GEMINI_LIVE_MODEL,
        system_instruction=system_instruction,
        generation_config=genai.GenerationConfig(**generation_config),
    )
    # Blocking network call; runs on the native thread pool.
    return tpool.execute(model.generate_content, contents)


def run_interaction(payload: Any) -> tuple[dict[str, Any], int]:
    """Handles one live interaction bundle."""
    api_key = config.get_gemini_api_key()
    if not api_key:
        return {"error": config.MISSING_API_KEY_MESSAGE}, 500

    if not isinstance(payload, dict):
        return {"error": "Request body must be a JSON object."}, 400
    if not payload.get("modeId"):
        return {"error": "modeId is required."}, 400
    if not payload.get("audioBase64") and not payload.get("prompt"):
        return {"error": "Submit either audioBase64 or prompt content for Gemini Live to process."}, 400

    try:
        interaction = InteractionRequest.model_validate(payload)
        contents = build_contents(interaction)
    except (ValidationError, ValueError) as e:
        return {"error": f"Invalid interaction payload: {e}"}, 400

    system_instruction = create_system_instruction(
        interaction.mode_id, interaction.connectors, interaction.design_profile
    )

    try:
        response = _generate(api_key, system_instruction, config.LIVE_GENERATION_CONFIG, contents)
    except Exception as e:
        logging.exception(f"Gemini Live request failed for mode '{interaction.mode_id}'.")
        return _upstream_error(e, "Gemini Live request failed unexpectedly.")

    return {
        "text": extract_text(response),
        "connectorContext": connector_context(interaction.connectors),
        "raw": _response_to_dict(response),
    }, 200


def run_design_suggestion(payload: Any) -> tuple[dict[str, Any], int]:
    """Handles one design-evolution request."""
    raw_profile = payload.get("profile") if isinstance(payload, dict) else None
    if not raw_profile:
        return {"error": "Design profile is required."}, 400
    try:
        profile = DesignProfile.model_validate(raw_profile)
    except ValidationError as e:
        return {"error": f"Invalid design profile: {e}"}, 400

    api_key = config.get_gemini_api_key()
    if not api_key:
        return DesignSuggestionResult(suggestion=fallback_suggestion(profile), source="fallback").to_wire(), 200

    contents = [{"role": "user", "parts": [{"text": build_design_prompt(profile)}]}]
    try:
        response = _generate(api_key, None, config.DESIGN_GENERATION_CONFIG, contents)
    except Exception as e:
        logging.exception("Design suggestion request failed.")
        return _upstream_error(e, "Design suggestion request failed.")

    raw_text = extract_text(response)
    try:
        suggestion = DesignSuggestion.model_validate_json(raw_text)
    except ValidationError as e:
        logging.warning(f"Failed to parse Gemini design response: {e}. Raw text: {raw_text!r}")
        return DesignSuggestionResult(
            suggestion=fallback_suggestion(profile),
            source="fallback",
            warning="Gemini response was not valid JSON. Returning fallback.",
        ).to_wire(), 200

    return DesignSuggestionResult(suggestion=suggestion, source="gemini").to_wire(), 200


@gateway_bp.route("/api/gemini/live", methods=["POST"])
def live_interaction():
    """Generates the assistant's reply to a console interaction."""
    body, status = run_interaction(request.get_json(silent=True))
    return jsonify(body), status


@gateway_bp.route("/api/gemini/design", methods=["POST"])
def design_suggestion():
    """Suggests the next evolution of the design profile."""
    body, status = run_design_suggestion(request.get_json(silent=True))
    return jsonify(body), status
