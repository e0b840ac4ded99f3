"""
Defines the core data structures for the console using Pydantic.

This module provides centralized, validated models shared by the orchestrator,
the gateway, the studio editors and the state store. Every model speaks the
camelCase wire format the browser and the gateway exchange (``modeId``,
``audioBase64``, ``connectorContext``...) while exposing snake_case attributes
to Python code. Either spelling is accepted on input.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Role = Literal["user", "assistant", "system"]
ConnectorType = Literal["mcp", "api", "datasource"]
ConnectorStatus = Literal["active", "paused", "draft"]
Density = Literal["cozy", "balanced", "airy"]
CornerStyle = Literal["rounded", "ultra-rounded", "sharp"]
ShadowStyle = Literal["soft", "vivid", "minimal"]


class WireModel(BaseModel):
    """Base model that serializes with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dumps the model the way it travels over HTTP and Socket.IO."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Persona(WireModel):
    """
    A named configuration of tone, instructions and opening lines.

    The browser calls these "modes"; a persona's id is what travels as
    ``modeId`` in every request.
    """

    id: str
    name: str
    description: str = ""
    system_instruction: str = ""
    tone: str = ""
    waveform_color: str = "#ffffff"
    highlight_gradient: str = "from-white to-white"
    tags: list[str] = Field(default_factory=list)
    default_openers: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)


class Connector(WireModel):
    """A reference to an external integration and its activation status."""

    id: str = ""
    name: str = ""
    type: ConnectorType = "mcp"
    endpoint: str = ""
    status: ConnectorStatus = "draft"
    description: str = ""
    capabilities: list[str] = Field(default_factory=list)
    last_sync: str = "now"


class Typography(WireModel):
    heading: str
    body: str
    monospace: str


class Layout(WireModel):
    density: Density
    corner_style: CornerStyle
    shadow_style: ShadowStyle


class VoiceProfile(WireModel):
    handoff_instruction: str
    prompt_primer: str


class DesignProfile(WireModel):
    """Visual styling parameters passed to the gateway as context."""

    id: str
    name: str
    primary_color: str
    accent_color: str
    background_gradient: str
    surface_alpha: float
    blur_intensity: float
    border_glow: float
    typography: Typography
    layout: Layout
    voice_profile: VoiceProfile


class Palette(WireModel):
    primary: str
    accent: str
    background: str
    surfaces: list[str] = Field(default_factory=list)


class DesignSuggestion(WireModel):
    """The JSON schema the design endpoint asks the model to fill in."""

    summary: str
    palette: Palette
    layout: Layout
    enhancements: list[str] = Field(default_factory=list)


class DesignSuggestionResult(WireModel):
    suggestion: DesignSuggestion
    source: Literal["gemini", "fallback"]
    warning: Optional[str] = None


class ChatMessage(WireModel):
    """
    A single entry of the conversation history.

    Messages are frozen once created; the session only ever appends new ones
    or replaces the whole sequence on a persona switch.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    role: Role
    text: str
    # The persona that was active when the message was created.
    persona_id: str = Field(alias="modeId")
    # Epoch milliseconds, matching the browser's Date.now().
    created_at: int
    # Active connector summaries attached to assistant replies.
    connector_context: Optional[list[str]] = None


class HistoryEntry(WireModel):
    """A message reduced to the fields the gateway needs."""

    role: Role
    text: str
    persona_id: str = Field(alias="modeId")


class InteractionRequest(WireModel):
    """The body of a ``POST /api/gemini/live`` call."""

    mode_id: str
    audio_base64: Optional[str] = None
    prompt: Optional[str] = None
    history: list[HistoryEntry] = Field(default_factory=list)
    connectors: list[Connector] = Field(default_factory=list)
    design_profile: Optional[DesignProfile] = None


class InteractionResult(WireModel):
    """A successful gateway reply."""

    text: str = ""
    connector_context: list[str] = Field(default_factory=list)
    raw: Optional[dict[str, Any]] = None


class StudioState(WireModel):
    """Everything the console persists between runs."""

    personas: list[Persona] = Field(default_factory=list)
    connectors: list[Connector] = Field(default_factory=list)
    design_profile: Optional[DesignProfile] = None
    active_persona_id: str = Field(default="", alias="activeModeId")
