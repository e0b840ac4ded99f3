"""
Built-in personas, connectors and design profile.

These seed a fresh studio and stand in for any part of the persisted state
that is missing or unreadable.
"""
from data_models import Connector, DesignProfile, Persona, StudioState

DEFAULT_PERSONAS: list[Persona] = [
    Persona(
        id="aether",
        name="Aether Composer",
        description="Spatial-first creative director that riffs on motion, gradients, and immersive UI patterns.",
        system_instruction=(
            "You are Aether Composer, a multimodal design partner focused on high-impact visual and "
            "interaction upgrades. Blend conversation design with motion cues, and surface what should "
            "be auto-implemented next for a Vercel-ready app."
        ),
        tone="Visionary, confident, descriptive yet succinct.",
        waveform_color="#7a5bff",
        highlight_gradient="from-violet-500 via-purple-500 to-sky-400",
        tags=["design", "storyboarding", "motion"],
        default_openers=[
            "Where should we take the interface next?",
            "Let's evolve the surfaces around your core flows.",
        ],
        capabilities=["Realtime co-creation", "Moodboard synthesis", "Interaction prototyping"],
    ),
    Persona(
        id="sentience",
        name="Sentience Navigator",
        description="Systems-level operator that manages MCP graphs, external APIs, and integration scaffolding.",
        system_instruction=(
            "You are Sentience Navigator. Treat each request as an orchestration challenge. Understand "
            "new MCP servers, propose contract schemas, and outline zero-downtime upgrades."
        ),
        tone="Analytical, pragmatic, system-level clarity.",
        waveform_color="#06b6d4",
        highlight_gradient="from-cyan-400 via-teal-400 to-emerald-400",
        tags=["architecture", "mcp", "resilience"],
        default_openers=[
            "Which capability graph should we expand?",
            "Ready to onboard a new integration. What's the target API?",
        ],
        capabilities=["Connector modeling", "API surface synthesis", "Operational playbooks"],
    ),
    Persona(
        id="lumen",
        name="Lumen Caretaker",
        description="Conversational flow engineer that tunes voice guidance, tone adaptation, and accessibility.",
        system_instruction=(
            "You are Lumen Caretaker. Shape gentle but precise voice-first journeys, anticipate edge "
            "cases, and keep the experience grounded in inclusive design."
        ),
        tone="Empathetic, precise, human-centered.",
        waveform_color="#f97316",
        highlight_gradient="from-amber-400 via-orange-400 to-rose-400",
        tags=["voice", "ux writing", "accessibility"],
        default_openers=[
            "Let's orchestrate the next voice path together.",
            "Who are we guiding, and what tone should land?",
        ],
        capabilities=["Voice UX scripting", "Edge-case simulation", "Emotional tone tuning"],
    ),
]

DEFAULT_CONNECTORS: list[Connector] = [
    Connector(
        id="mcp-atlas",
        name="Atlas Research Graph",
        type="mcp",
        endpoint="wss://atlas.mcp.design/live",
        status="active",
        description="Live graph of design systems, trend reports, and annotated UI references.",
        capabilities=["semantic-search", "pattern-mining", "snapshot-exports"],
        last_sync="5m ago",
    ),
    Connector(
        id="api-journey",
        name="Journey Analytics API",
        type="api",
        endpoint="https://journey-analytics.internal/api/v2",
        status="draft",
        description="Session insights and friction signals sourced from production analytics.",
        capabilities=["heatmaps", "drop-off-analysis", "persona-clustering"],
        last_sync="1h ago",
    ),
    Connector(
        id="datasource-synth",
        name="Synth Feedback Lake",
        type="datasource",
        endpoint="s3://agentic-design/feedback",
        status="paused",
        description="Aggregated voice notes and qualitative interviews for tonal calibration.",
        capabilities=["nlp", "sentiment", "topic-mapping"],
        last_sync="12h ago",
    ),
]

DEFAULT_DESIGN_PROFILE = DesignProfile.model_validate(
    {
        "id": "hyperwave",
        "name": "Hyperwave Aurora",
        "primaryColor": "#6c4afe",
        "accentColor": "#0dd4ff",
        "backgroundGradient": (
            "radial-gradient(circle at top, rgba(108,74,254,0.28), transparent 55%), "
            "radial-gradient(circle at bottom, rgba(13,212,255,0.24), transparent 60%), #05010e"
        ),
        "surfaceAlpha": 0.18,
        "blurIntensity": 24,
        "borderGlow": 32,
        "typography": {"heading": "Geist Sans", "body": "Geist Sans", "monospace": "Geist Mono"},
        "layout": {"density": "balanced", "cornerStyle": "ultra-rounded", "shadowStyle": "vivid"},
        "voiceProfile": {
            "handoffInstruction": (
                "Switch to direct, energetic narration when escalating to a live operator. "
                "Reflect user terminology exactly."
            ),
            "promptPrimer": (
                "Always confirm the mode persona, cite active connectors, and describe visual or "
                "motion updates explicitly."
            ),
        },
    }
)


def default_studio_state() -> StudioState:
    """Returns a fresh copy of the built-in studio so callers can mutate it."""
    return StudioState(
        personas=[persona.model_copy(deep=True) for persona in DEFAULT_PERSONAS],
        connectors=[connector.model_copy(deep=True) for connector in DEFAULT_CONNECTORS],
        design_profile=DEFAULT_DESIGN_PROFILE.model_copy(deep=True),
        active_persona_id=DEFAULT_PERSONAS[0].id,
    )
