"""
project: Castaway MUD
module: __init__.py
License: MIT

Flask application factory and core extensions setup.

This module wires together the Flask app, SQLAlchemy and Flask-SocketIO.
Configuration is sourced from environment variables with reasonable defaults
for development. A local `instance/` directory is used for SQLite, the log
file and other runtime data.
"""

import logging
import os
import uuid
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

# Load .env if present so `SECRET_KEY`, `DATABASE_URL`, `OPENAI_API_KEY`, etc.
# can be supplied without exporting shell variables during development.
load_dotenv()

app = Flask(__name__, instance_relative_config=True)

try:
    os.makedirs(app.instance_path, exist_ok=True)
except OSError:
    # Read-only checkouts can still run against an explicit DATABASE_URL
    pass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning("Ignoring non-integer %s=%r", name, raw)
        return default


secret_key = os.getenv("SECRET_KEY", "dev-secret-change-me")
database_url = os.getenv("DATABASE_URL")
if not database_url:
    db_path = Path(app.instance_path) / "castaway.db"
    # Use POSIX path for SQLAlchemy URI compatibility across OS
    database_url = f"sqlite:///{db_path.as_posix()}"

app.config.update(
    SECRET_KEY=secret_key,
    SQLALCHEMY_DATABASE_URI=database_url,
    SQLALCHEMY_TRACK_MODIFICATIONS=False,
    # Credential issuance
    JWT_SECRET=os.getenv("JWT_SECRET") or secret_key,
    JWT_EXPIRES_HOURS=_env_int("JWT_EXPIRES_HOURS", 24 * 7),
    SERVER_ACCESS_CODE=os.getenv("SERVER_ACCESS_CODE") or None,
    VALID_SERVER_CODES=os.getenv("VALID_SERVER_CODES") or None,
    # Game tuning
    COMBAT_TICK_MS=_env_int("COMBAT_TICK_MS", 1500),
    VISIBLE_RADIUS=_env_int("VISIBLE_RADIUS", 5),
    ANIMATION_FPS=_env_int("ANIMATION_FPS", 2),
    # Art service (OpenAI-compatible chat completions)
    OPENAI_API_KEY=os.getenv("OPENAI_API_KEY") or None,
    ART_API_URL=os.getenv("ART_API_URL", "https://api.openai.com/v1/chat/completions"),
    ART_MODEL=os.getenv("ART_MODEL", "gpt-4o"),
    ART_TIMEOUT=_env_int("ART_TIMEOUT", 60),
)

engine_opts = {}
if database_url.startswith("sqlite:///"):
    engine_opts["connect_args"] = {
        "timeout": 10,  # busy timeout (seconds) for sqlite
        "check_same_thread": False,  # combat ticks and weaving run on background tasks
    }
db = SQLAlchemy(app, session_options={"expire_on_commit": False}, engine_options=engine_opts)

# Let Flask-SocketIO select best async_mode based on installed deps (eventlet/gevent/threading)
socketio = SocketIO(
    app,
    async_mode=os.getenv("SOCKETIO_ASYNC_MODE") or None,
    cors_allowed_origins=os.getenv("CORS_ALLOWED_ORIGINS", "*"),
    ping_interval=20,
    ping_timeout=10,
)

# SQLite tuning (WAL + busy timeout) so background tasks and handlers can share the file.
from sqlalchemy import event  # noqa: E402
from sqlalchemy.engine import Engine  # noqa: E402


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: D401
    if dbapi_connection.__class__.__module__.split(".")[0] not in ("sqlite3", "pysqlite2"):
        return
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA busy_timeout=10000")
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


# Register HTTP blueprints (import after app/db created)
from castaway.routes import auth  # noqa: E402

app.register_blueprint(auth.bp)

# Import websocket handlers so their event decorators register with Socket.IO (side-effect)
from castaway.websockets import game as _ws_game  # noqa: F401,E402


def create_app():
    """Return the Flask app instance, ensuring the schema exists.

    ``db.create_all`` is idempotent so this is safe to call from tests, the
    CLI and the server bootstrap alike.
    """
    from castaway.models import models as _models  # noqa: F401

    with app.app_context():
        db.create_all()
    return app


@app.errorhandler(500)
def internal_error(e):
    error_id = uuid.uuid4().hex[:8]
    logging.exception("Unhandled exception (id=%s)", error_id)
    return jsonify({"success": False, "error": "Internal server error", "error_id": error_id}), 500
