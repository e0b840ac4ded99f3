"""
Persists the studio (personas, connectors, design profile, active persona).

The state file is a small key-value document; the studio blob lives under a
single fixed key so other data can share the file. Reading never fails: a
missing or corrupt blob falls back to the built-in defaults, field by field.
Writing never fails either: storage problems are logged and ignored.
"""
import json
import logging
import os
import threading
from typing import Any

from pydantic import ValidationError

from config import STATE_FILE_PATH, STORAGE_KEY
from data_models import StudioState
from defaults import default_studio_state


class StudioStateStore:
    def __init__(self, path: str = STATE_FILE_PATH, key: str = STORAGE_KEY):
        self.path = path
        self.key = key
        self.lock = threading.Lock()

    def _read_document(self) -> dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"Failed to read studio state from '{self.path}': {e}")
            return {}
        if not isinstance(document, dict):
            logging.warning(f"Ignoring studio state file '{self.path}': expected a JSON object.")
            return {}
        return document

    def load(self) -> StudioState:
        """Reads the studio, filling every missing or unreadable part from the defaults."""
        defaults = default_studio_state()
        with self.lock:
            blob = self._read_document().get(self.key)
        if blob is None:
            return defaults

        try:
            stored = StudioState.model_validate(blob)
        except ValidationError as e:
            logging.warning(f"Failed to parse stored studio state: {e}")
            return defaults

        state = StudioState(
            personas=stored.personas or defaults.personas,
            connectors=stored.connectors or defaults.connectors,
            design_profile=stored.design_profile or defaults.design_profile,
            active_persona_id=stored.active_persona_id,
        )
        if not any(persona.id == state.active_persona_id for persona in state.personas):
            state.active_persona_id = state.personas[0].id
        return state

    def save(self, state: StudioState) -> None:
        """Writes the studio blob, keeping any other keys in the file."""
        with self.lock:
            document = self._read_document()
            document[self.key] = state.to_wire()
            try:
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                tmp_path = f"{self.path}.tmp"
                with open(tmp_path, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except OSError as e:
                logging.warning(f"Failed to persist studio state to '{self.path}': {e}")
