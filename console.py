"""
Terminal console for the Hyperwave gateway.

Keeps a local conversation session, persists the studio the same way the
server does, and talks to a running gateway over HTTP.

Usage:
    python console.py [--gateway-url URL] [--persona ID]
"""
import argparse
import logging
import sys
from typing import Optional

import orchestrator
import studio
from audio import AudioRecorder, FileAudioSource
from config import SERVER_PORT
from data_models import DesignSuggestion, StudioState
from gateway_client import GatewayError, HttpGatewayClient
from orchestrator import InteractionContext, InteractionInput, UnknownPersonaError
from session_models import ConsoleSession, SessionBusyError
from state_store import StudioStateStore
from utils import get_timestamp

HELP_TEXT = """Commands:
  <text>          send a message
  /audio PATH     send an audio file as a voice capture
  /persona ID     switch persona (restarts the conversation)
  /personas       list personas
  /connectors     list connectors
  /toggle ID      cycle a connector's status
  /evolve         ask for a design suggestion
  /apply          apply the last design suggestion
  /quit           leave"""


class TerminalConsole:
    def __init__(self, gateway: HttpGatewayClient, store: StudioStateStore, out=sys.stdout):
        self.gateway = gateway
        self.store = store
        self.out = out
        self.studio: StudioState = store.load()
        persona = studio.resolve_active_persona(self.studio)
        self.session = ConsoleSession(name=f"Terminal_{get_timestamp()}", active_persona_id=persona.id)
        orchestrator.select_persona(self.session, self.studio.personas, persona.id)
        self.last_suggestion: Optional[DesignSuggestion] = None
        self._printed = 0

    def print(self, text: str = "") -> None:
        print(text, file=self.out)

    def _context(self) -> InteractionContext:
        return InteractionContext(
            personas=self.studio.personas,
            connectors=self.studio.connectors,
            design_profile=self.studio.design_profile,
            gateway=self.gateway,
        )

    def render(self) -> None:
        """Prints messages not shown yet, then the error if the session failed."""
        for message in self.session.messages[self._printed:]:
            speaker = "you" if message.role == "user" else message.persona_id
            self.print(f"[{speaker}] {message.text}")
            for line in message.connector_context or []:
                self.print(f"    ↳ {line}")
        self._printed = len(self.session.messages)
        if self.session.status == "error":
            self.print(f"! {self.session.last_error}")

    def switch_persona(self, persona_id: str) -> None:
        orchestrator.select_persona(self.session, self.studio.personas, persona_id)
        self.studio.active_persona_id = persona_id
        self.store.save(self.studio)
        self._printed = 0

    def send_audio(self, path: str) -> None:
        with AudioRecorder(FileAudioSource(path), min_recording_ms=0) as recorder:
            orchestrator.start_recording(self.session, recorder)
            if self.session.status != "error":
                orchestrator.stop_recording(self.session, recorder, self._context())

    def evolve(self) -> None:
        result = self.gateway.suggest_design(self.studio.design_profile)
        self.last_suggestion = result.suggestion
        self.print(f"[design:{result.source}] {result.suggestion.summary}")
        palette = result.suggestion.palette
        self.print(f"    primary {palette.primary} · accent {palette.accent}")
        for enhancement in result.suggestion.enhancements:
            self.print(f"    - {enhancement}")
        if result.warning:
            self.print(f"    ({result.warning})")

    def apply(self) -> None:
        if self.last_suggestion is None:
            self.print("No suggestion yet. Run /evolve first.")
            return
        self.studio.design_profile = studio.apply_suggestion(self.studio.design_profile, self.last_suggestion)
        self.store.save(self.studio)
        self.print(f"Applied. Primary is now {self.studio.design_profile.primary_color}.")

    def handle(self, line: str) -> bool:
        """Runs one input line. Returns False when the user wants to leave."""
        command, _, argument = line.strip().partition(" ")
        argument = argument.strip()
        try:
            if command == "/quit":
                return False
            elif command == "/help":
                self.print(HELP_TEXT)
            elif command == "/persona":
                self.switch_persona(argument)
            elif command == "/personas":
                for persona in self.studio.personas:
                    marker = "*" if persona.id == self.session.active_persona_id else " "
                    self.print(f"{marker} {persona.id}: {persona.name} ({persona.tone})")
            elif command == "/connectors":
                self.print(studio.summarize_connectors(self.studio.connectors))
                for connector in self.studio.connectors:
                    self.print(f"  {connector.id}: {connector.name} [{connector.status}]")
            elif command == "/toggle":
                connector = studio.cycle_connector_status(self.studio, argument)
                self.store.save(self.studio)
                self.print(f"{connector.name} is now {connector.status}.")
            elif command == "/evolve":
                self.evolve()
            elif command == "/apply":
                self.apply()
            elif command == "/audio":
                self.send_audio(argument)
            else:
                orchestrator.submit(self.session, InteractionInput(text=line), self._context())
        except (UnknownPersonaError, SessionBusyError, GatewayError) as e:
            self.print(f"! {e}")
        except KeyError:
            self.print(f"! Unknown connector '{argument}'.")
        self.render()
        return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Hyperwave terminal console")
    parser.add_argument("--gateway-url", default=f"http://127.0.0.1:{SERVER_PORT}", help="Base URL of a running gateway.")
    parser.add_argument("--persona", help="Persona to start with.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s - %(levelname)s - %(message)s")

    console = TerminalConsole(HttpGatewayClient(args.gateway_url), StudioStateStore())
    if args.persona:
        try:
            console.switch_persona(args.persona)
        except UnknownPersonaError as e:
            print(f"ERROR: {e}")
            return 1

    console.render()
    console.print("Type /help for commands.")
    while True:
        try:
            line = input("> ")
        except (EOFError, KeyboardInterrupt):
            break
        if line.strip() and not console.handle(line):
            break
    return 0


if __name__ == "__main__":
    sys.exit(main())
