import csv
import json
import logging
import os
import threading
from datetime import datetime

from config import AUDIT_LOG_PATH

HEADER = ["Timestamp", "Event", "ConsoleID", "SessionName", "PersonaID", "Status", "Details"]


class AuditLogger:
    """
    Appends console events to a CSV audit trail.

    Persona switches, submissions, failures and studio edits are recorded one
    row each. Once a Socket.IO server is registered, every event is also
    broadcast to connected clients as ``new_audit_event``.
    """

    def __init__(self, filepath=AUDIT_LOG_PATH):
        self.filepath = filepath
        self.lock = threading.Lock()
        self.socketio = None
        self._initialized = False

    def register_socketio(self, sio):
        """Allows the main app to register the Socket.IO instance."""
        self.socketio = sio

    def _initialize_file(self):
        """Creates the CSV file and writes the header if it doesn't exist."""
        os.makedirs(os.path.dirname(self.filepath) or ".", exist_ok=True)
        file_exists = os.path.exists(self.filepath)
        with open(self.filepath, "a", newline="", encoding="utf-8") as f:
            if not file_exists or os.path.getsize(self.filepath) == 0:
                csv.writer(f).writerow(HEADER)
        self._initialized = True

    def log_event(self, event, console_id=None, session=None, details=None):
        """
        Records one event. ``session`` is the ConsoleSession the event concerns, if any.

        Failures to write the trail are logged and otherwise ignored.
        """
        row = [
            datetime.now().isoformat(),
            event,
            console_id or "N/A",
            session.name if session else "N/A",
            session.active_persona_id if session else "N/A",
            session.status if session else "N/A",
            json.dumps(details) if details is not None else "",
        ]

        with self.lock:
            try:
                if not self._initialized:
                    self._initialize_file()
                with open(self.filepath, "a", newline="", encoding="utf-8") as f:
                    csv.writer(f, quoting=csv.QUOTE_ALL).writerow(row)
            except OSError as e:
                logging.warning(f"Could not write audit event '{event}' to '{self.filepath}': {e}")

            if self.socketio:
                broadcast = {
                    "event": event,
                    "console_id": console_id,
                    "session_name": row[3],
                    "status": row[5],
                    "details": details,
                }
                self.socketio.start_background_task(self.socketio.emit, "new_audit_event", broadcast)


# Create a single, global instance to be used by the entire application
audit_log = AuditLogger()
