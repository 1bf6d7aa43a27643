"""
project: Castaway MUD
module: server.py
License: MIT

Server bootstrap helpers.

Exposes helpers to start the Socket.IO server, configure logging, and a few
operator utilities used by the CLI (account creation, room listing).
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

from castaway import app, db, socketio
from castaway.models.models import Room
from castaway.services import repository as repo
from castaway.services import auth_service


def start_server(host="0.0.0.0", port=5000, debug: bool = False):  # pragma: no cover (integration / runtime only)
    """Start the Socket.IO server and ensure DB tables exist.

    When debug=True, Flask's debugger and reloader provide verbose tracebacks.
    Also configures application logging to a rotating file and console.
    """
    with app.app_context():
        db.create_all()
        _configure_logging()
    try:
        print(f"[INFO] Starting Socket.IO server on {host}:{port} (async_mode={socketio.async_mode})")
        socketio.run(app, host=host, port=port, debug=debug, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        print("\n[INFO] Server stopped by user (Ctrl+C)")
        sys.exit(0)


def _configure_logging():
    """Configure logging to both console and a rotating file in instance/.

    The file path will be instance/castaway.log. Retains a few backups to avoid growth.
    """
    log_dir = app.instance_path
    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError:
        pass
    log_path = os.path.join(log_dir, "castaway.log")

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)

    # Avoid duplicate handlers if reconfigured
    for h in list(root.handlers):
        root.removeHandler(h)

    root.addHandler(file_handler)
    root.addHandler(console)
    return log_path


def create_user(handle: str, password: str, server_code: str):
    """Create a player account from the command line; returns (user, error)."""
    with app.app_context():
        db.create_all()
        try:
            user = auth_service.signup(handle, password, server_code)
        except auth_service.AuthError as exc:
            return None, exc.message
        return user, None


def list_rooms(server_code: str = None):
    """Return ``(q, r, realm, title, symbol)`` tuples, optionally for one realm."""
    with app.app_context():
        db.create_all()
        query = Room.query
        if server_code:
            query = query.filter_by(server_code=repo.normalize_realm(server_code))
        rows = query.order_by(Room.server_code.asc(), Room.r.asc(), Room.q.asc()).all()
        return [(r.q, r.r, r.server_code, r.title, r.symbol) for r in rows]
