"""Socket.IO game handlers.

Events:
    - connect: handshake must carry a token (auth.token, ?token= or Bearer header)
    - cmd:input: one line typed by the player; payload { raw }
    - combat:retreat: leave the current battle
    - disconnect: release transient state for the connection

Emits (to the issuing connection only):
    - game:log, state:update, animation:play, combat:update, combat:end
"""

from flask import request

from castaway import app, socketio
from castaway.logging_utils import get_logger
from castaway.services.art_service import ArtClient
from castaway.services.auth_service import verify_token
from castaway.services.combat_state import BattleRegistry
from castaway.services.dispatcher import Dispatcher
from castaway.services.events import Channel
from castaway.services.scratch_store import SessionStore

from .validation import CMD_INPUT, validate

_log = get_logger("session")

store = SessionStore()
battles = BattleRegistry()
dispatcher = Dispatcher(store, battles, ArtClient.from_config(app.config))


def _handshake_token(auth):
    if isinstance(auth, dict) and auth.get("token"):
        return str(auth["token"])
    token = request.args.get("token")
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


@socketio.on("connect")
def handle_connect(auth=None):
    claims = verify_token(_handshake_token(auth))
    if not claims:
        _log.info(event="connect_refused", sid=request.sid, reason="token")
        raise ConnectionRefusedError("Authentication required")
    user = dispatcher.connect(Channel(request.sid), claims["userId"], request.sid)
    if user is None:
        _log.info(event="connect_refused", sid=request.sid, reason="unknown_user")
        raise ConnectionRefusedError("Unknown user")


@socketio.on("cmd:input")
def handle_cmd_input(data):
    out = Channel(request.sid)
    ok, result = validate(data if data is not None else {}, CMD_INPUT)
    if not ok:
        out.error(f"Invalid command: {result['error']}")
        return
    user_id = store.user_for(request.sid)
    if user_id is None:
        out.error("User not found for this session.")
        return
    dispatcher.dispatch(out, user_id, result["raw"])


@socketio.on("combat:retreat")
def handle_combat_retreat(data=None):
    out = Channel(request.sid)
    user_id = store.user_for(request.sid)
    if user_id is None:
        out.error("User not found for this session.")
        return
    dispatcher.retreat(out, user_id)


@socketio.on("disconnect")
def handle_disconnect(*args):
    dispatcher.disconnect(request.sid)
