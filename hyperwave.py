"""
Main application bootstrap file.

This script initializes the Flask application and the SocketIO server,
registers the Backend Gateway endpoints and the console's SocketIO event
handlers, and starts the server.
"""
import logging

import debugpy
from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

import events
from audit_logger import audit_log
from config import DEBUG_MODE, GATEWAY_URL, SERVER_PORT, get_gemini_api_key
from gateway import gateway_bp
from gateway_client import create_gateway_client
from state_store import StudioStateStore

# --- CONFIGURATION ---
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
app = Flask(__name__)
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode="eventlet")

audit_log.register_socketio(socketio)

# --- GLOBAL INITIALIZATION ---
app.register_blueprint(gateway_bp)
events.register_events(socketio, StudioStateStore(), create_gateway_client(GATEWAY_URL))


# --- MAIN EXECUTION ---
if __name__ == "__main__":
    if not get_gemini_api_key():
        app.logger.warning("GEMINI_API_KEY is not configured. Live interactions will fail until it is set.")

    if DEBUG_MODE:
        debugpy.listen(("0.0.0.0", 5678))
        app.logger.info("Debugpy server listening. Waiting for debugger to attach...")
        debugpy.wait_for_client()
        app.logger.info("Debugger attached.")

    app.logger.info(f"Starting Hyperwave console server on http://127.0.0.1:{SERVER_PORT}")
    audit_log.log_event("Server Started")
    socketio.run(app, port=SERVER_PORT)
