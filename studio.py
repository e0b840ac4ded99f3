"""
Editing operations for the studio: personas, connectors and the design profile.

These functions mutate a ``StudioState`` in place and return the object they
touched. Persisting the result is the caller's job.
"""
from typing import Iterable, Optional

from data_models import Connector, DesignProfile, DesignSuggestion, Persona, StudioState
from utils import BASE36_ALPHABET, HEX_ALPHABET, random_suffix

NO_CONNECTORS_SUMMARY = "No live connectors. Provide guidance from core knowledge."

# active -> paused -> draft -> active
NEXT_CONNECTOR_STATUS = {"active": "paused", "paused": "draft", "draft": "active"}


def split_tokens(value: str) -> list[str]:
    """Splits a comma-separated field into trimmed, non-empty tokens."""
    return [token.strip() for token in value.split(",") if token.strip()]


def split_lines(value: str) -> list[str]:
    return [line.strip() for line in value.split("\n") if line.strip()]


def dedupe_tokens(tokens: Iterable[str]) -> list[str]:
    # dict preserves first-seen order
    return list(dict.fromkeys(token.strip() for token in tokens if token and token.strip()))


# --- Personas ---

def resolve_active_persona(state: StudioState) -> Optional[Persona]:
    """The persona selected in the studio, or the first one when the id is stale."""
    for persona in state.personas:
        if persona.id == state.active_persona_id:
            return persona
    return state.personas[0] if state.personas else None


def find_persona(personas: Iterable[Persona], persona_id: str) -> Optional[Persona]:
    return next((persona for persona in personas if persona.id == persona_id), None)


def new_persona_draft() -> Persona:
    return Persona(
        id=f"mode-{random_suffix(HEX_ALPHABET)}",
        name="Untitled Mode",
        tone="Adaptive, succinct",
        waveform_color="#ffffff",
        highlight_gradient="from-white to-white",
    )


def normalize_persona(persona: Persona) -> Persona:
    return persona.model_copy(
        update={
            "tags": dedupe_tokens(persona.tags),
            "default_openers": [opener for opener in persona.default_openers if opener],
            "capabilities": dedupe_tokens(persona.capabilities),
        }
    )


def save_persona(state: StudioState, persona: Persona) -> Persona:
    """
    Creates or updates a persona.

    An existing id is updated in place. A new persona is appended and becomes
    the active one, matching what the composer does when a mode is created.
    """
    normalized = normalize_persona(persona)
    for index, existing in enumerate(state.personas):
        if existing.id == normalized.id:
            state.personas[index] = normalized
            return normalized
    state.personas.append(normalized)
    state.active_persona_id = normalized.id
    return normalized


# --- Connectors ---

def new_connector_draft() -> Connector:
    return Connector(id=f"conn-{random_suffix(BASE36_ALPHABET)}")


def save_connector(state: StudioState, connector: Connector) -> Connector:
    """Replaces a connector with the same id, or puts a new one at the top of the list."""
    normalized = connector.model_copy(
        update={
            "id": connector.id or new_connector_draft().id,
            "capabilities": split_tokens(",".join(connector.capabilities)),
        }
    )
    for index, existing in enumerate(state.connectors):
        if existing.id == normalized.id:
            state.connectors[index] = normalized
            return normalized
    state.connectors.insert(0, normalized)
    return normalized


def cycle_connector_status(state: StudioState, connector_id: str) -> Connector:
    """
    Advances a connector to its next status and marks it as just synced.

    Raises:
        KeyError: If no connector has ``connector_id``.
    """
    for index, existing in enumerate(state.connectors):
        if existing.id == connector_id:
            updated = existing.model_copy(
                update={"status": NEXT_CONNECTOR_STATUS[existing.status], "last_sync": "now"}
            )
            state.connectors[index] = updated
            return updated
    raise KeyError(connector_id)


def active_connectors(connectors: Iterable[Connector]) -> list[Connector]:
    return [connector for connector in connectors if connector.status == "active"]


def connector_context(connectors: Iterable[Connector]) -> list[str]:
    """One ``"<name> · <caps>"`` line per active connector, at most three capabilities each."""
    return [
        f"{connector.name} · {', '.join(connector.capabilities[:3])}"
        for connector in active_connectors(connectors)
    ]


def summarize_connectors(connectors: Iterable[Connector]) -> str:
    active = active_connectors(connectors)
    if not active:
        return NO_CONNECTORS_SUMMARY
    lines = [
        f"{connector.name} ({connector.type}) → {', '.join(connector.capabilities[:3])}"
        for connector in active
    ]
    return f"Active graph: {' · '.join(lines)}"


# --- Design ---

def update_design_profile(state: StudioState, profile: DesignProfile) -> DesignProfile:
    state.design_profile = profile
    return profile


def apply_suggestion(profile: DesignProfile, suggestion: DesignSuggestion) -> DesignProfile:
    """Folds a suggestion's palette and layout into a copy of ``profile``."""
    return profile.model_copy(
        update={
            "primary_color": suggestion.palette.primary or profile.primary_color,
            "accent_color": suggestion.palette.accent or profile.accent_color,
            "background_gradient": suggestion.palette.background or profile.background_gradient,
            "layout": suggestion.layout.model_copy(),
        }
    )
